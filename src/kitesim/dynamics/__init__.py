from .body import KiteBody, KiteState
from .geometry import BRIDLES, KiteGeometry, bridle_residuals, derive_control_points
from .constraints import ConstraintSet, GroundConstraint, LineConstraint, build_constraint_set
from .tension import PilotFeedback, TensionMonitor, TensionReport, compute_tension
