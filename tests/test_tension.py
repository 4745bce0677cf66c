import numpy as np
import pytest

from kitesim.config import FeedbackConfig, LineConfig
from kitesim.dynamics.constraints import build_constraint_set
from kitesim.dynamics.tension import (
    PilotFeedback,
    TensionMonitor,
    asymmetry_percent,
    compute_tension,
    conservation_factor,
    decompose_bridle_tensions,
    dominant_side,
    tension_magnitude,
)

X = np.array([1.0, 0.0, 0.0])


class TestTensionLaw:

    def test_slack_line_has_no_tension(self):
        assert tension_magnitude(14.0, 15.0, 3500.0, 200.0) == 0.0
        assert tension_magnitude(15.0, 15.0, 3500.0, 200.0) == 0.0

    def test_hookean_below_clamp(self):
        assert tension_magnitude(15.01, 15.0, 3500.0, 200.0) == pytest.approx(35.0)

    def test_clamped_at_max(self):
        assert tension_magnitude(16.0, 15.0, 3500.0, 200.0) == 200.0

    def test_direction_points_from_kite_to_anchor(self):
        t = compute_tension(np.zeros(3), np.array([0.0, 0.0, 15.02]), 15.0, 3500.0, 200.0)
        assert np.allclose(t.direction, [0.0, 0.0, 1.0])
        assert t.deviation == pytest.approx(0.02)
        assert np.allclose(t.force, [0.0, 0.0, 70.0])

    def test_coincident_points_give_zero_direction(self):
        t = compute_tension(np.ones(3), np.ones(3), 0.0, 3500.0, 200.0)
        assert np.array_equal(t.direction, np.zeros(3))
        assert t.magnitude == 0.0

    def test_current_length_override(self):
        t = compute_tension(np.zeros(3), 15.0 * X, 15.0, 3500.0, 200.0, current_length=15.01)
        assert t.current_length == 15.01
        assert t.magnitude == pytest.approx(35.0)


class TestBridleDecomposition:

    def test_balances_line_force(self):
        anchors = [
            np.array([-1.0, 0.0, 0.5]),
            np.array([-1.0, 0.5, -0.3]),
            np.array([-1.0, -0.5, -0.3]),
        ]
        line_force = np.array([10.0, 0.0, 0.0])
        t = decompose_bridle_tensions(line_force, np.zeros(3), anchors, 80.0)

        U = np.column_stack([a / np.linalg.norm(a) for a in anchors])
        assert np.all(t >= 0.0)
        assert np.allclose(U @ t, -line_force, atol=1e-9)
        assert t[1] == pytest.approx(t[2])

    def test_zero_force_gives_zero_tensions(self):
        t = decompose_bridle_tensions(np.zeros(3), np.zeros(3), [X, -X, np.ones(3)], 80.0)
        assert np.array_equal(t, np.zeros(3))

    def test_clamped_to_bridle_maximum(self):
        anchors = [np.array([-1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0]), np.array([0.0, 0.0, 1.0])]
        t = decompose_bridle_tensions(np.array([500.0, 0.0, 0.0]), np.zeros(3), anchors, 80.0)
        assert t[0] == 80.0

    @pytest.mark.parametrize(
        "line, bridle_sum, expected",
        [
            (0.0, 50.0, 1.0),
            (35.0, 44.0, 0.9),
            (50.0, 30.0, 1.1),
            (50.0, 48.0, 50.0 / 48.0),
            (5.0, 0.0, 1.1),
        ],
    )
    def test_conservation_factor(self, line, bridle_sum, expected):
        assert conservation_factor(line, bridle_sum, 0.1) == pytest.approx(expected)


class TestAsymmetry:

    def test_percent(self):
        assert asymmetry_percent(30.0, 10.0) == pytest.approx(50.0)
        assert asymmetry_percent(0.0, 0.0) == 0.0

    def test_dominant_side(self):
        assert dominant_side(30.0, 10.0, 50.0, 10.0) == "left"
        assert dominant_side(10.0, 30.0, 50.0, 10.0) == "right"
        assert dominant_side(10.5, 10.0, 2.4, 10.0) == "neutral"


class TestTensionMonitor:

    @pytest.fixture
    def monitor(self):
        return TensionMonitor(LineConfig(), FeedbackConfig())

    def _update(self, monitor, geometry, config, left_len, right_len, dt=0.0, current=None):
        handles = (geometry["ctrl_left"] + left_len * X, geometry["ctrl_right"] + right_len * X)
        constraints = build_constraint_set(*handles, line_length=15.0)
        return monitor.update(
            np.zeros(3), np.array([0.0, 0.0, 0.0, 1.0]), geometry, constraints,
            config.bridles, dt=dt, current_lengths=current,
        )

    def test_symmetric_lines(self, monitor, geometry, config):
        report = self._update(monitor, geometry, config, 15.005, 15.005)
        assert report.left_total == pytest.approx(17.5, rel=1e-6)
        assert report.right_total == pytest.approx(17.5, rel=1e-6)
        assert report.asymmetry == pytest.approx(0.0, abs=1e-6)
        assert report.dominant_side == "neutral"

    def test_left_stretched(self, monitor, geometry, config):
        report = self._update(monitor, geometry, config, 15.01, 14.9)
        assert report.left_total == pytest.approx(35.0, rel=1e-6)
        assert report.right_total == 0.0
        assert report.asymmetry == pytest.approx(100.0)
        assert report.dominant_side == "left"

    def test_bridles_follow_their_line(self, monitor, geometry, config):
        report = self._update(monitor, geometry, config, 15.01, 14.9)
        assert report.bridle_sum("left") > 0.0
        assert report.bridle_sum("right") == 0.0
        # Pull along +X loads nose and spreader bridles equally
        b = report.bridles
        assert b["bridle_nose_left"].magnitude == pytest.approx(b["bridle_inter_left"].magnitude)
        assert b["bridle_centre_left"].magnitude == pytest.approx(0.0, abs=1e-6)

    def test_bridle_strain_at_rest_lengths(self, monitor, geometry, config):
        report = self._update(monitor, geometry, config, 15.01, 15.01)
        for b in report.bridles.values():
            assert abs(b.residual) < 1e-9
            assert b.strain_tension == pytest.approx(0.0, abs=1e-9)

    def test_rates(self, monitor, geometry, config):
        self._update(monitor, geometry, config, 15.01, 15.0)
        report = self._update(monitor, geometry, config, 15.02, 15.0, dt=0.5)
        assert report.left_rate == pytest.approx(70.0, rel=1e-4)
        assert report.right_rate == 0.0

    def test_current_lengths_override(self, monitor, geometry, config):
        report = self._update(
            monitor, geometry, config, 15.0, 15.0, current={"line_left": 15.02}
        )
        assert report.left_total == pytest.approx(70.0)
        assert report.right_total == pytest.approx(0.0, abs=1e-9)

    def test_reset(self, monitor, geometry, config):
        self._update(monitor, geometry, config, 15.01, 15.0)
        monitor.reset()
        assert monitor.report.left_total == 0.0
        report = self._update(monitor, geometry, config, 15.02, 15.0, dt=0.5)
        assert report.left_rate == 0.0

    def test_stretch_from_previous_frame_length(self, monitor, geometry, config):
        # Left line ended the last frame 1 mm short, right at rest length
        self._update(monitor, geometry, config, 14.999, 15.0)
        report = self._update(
            monitor, geometry, config, 15.0, 15.0, dt=1 / 60,
            current={"line_left": 15.002, "line_right": 15.003},
        )
        assert report.left_total == pytest.approx(10.5, rel=1e-6)
        assert report.right_total == pytest.approx(10.5, rel=1e-6)
        assert report.dominant_side == "neutral"

    def test_slack_previous_frame_uses_rest_length(self, monitor, geometry, config):
        self._update(monitor, geometry, config, 14.9, 14.9)
        report = self._update(
            monitor, geometry, config, 15.0, 15.0, dt=1 / 60, current={"line_left": 15.002}
        )
        assert report.left_total == pytest.approx(7.0, rel=1e-6)

    def test_stretch_rescaled_to_reference_frame(self, monitor, geometry, config):
        report = self._update(
            monitor, geometry, config, 15.0, 15.0, dt=1 / 30, current={"line_left": 15.004}
        )
        # Twice the frame time, four times the stretch
        assert report.left_total == pytest.approx(3.5, rel=1e-6)

    def test_short_pre_correction_length_is_slack(self, monitor, geometry, config):
        self._update(monitor, geometry, config, 14.999, 15.0)
        report = self._update(
            monitor, geometry, config, 15.0, 15.0, dt=1 / 60, current={"line_left": 14.9995}
        )
        assert report.left_total == 0.0
        assert report.lines["left"].deviation < 0.0

    def test_reset_forgets_previous_lengths(self, monitor, geometry, config):
        line = build_constraint_set(
            geometry["ctrl_left"] + 15.0 * X, geometry["ctrl_right"] + 15.0 * X, line_length=15.0
        ).line("left")
        self._update(monitor, geometry, config, 14.999, 15.0)
        assert monitor.frame_length(line, 15.002, 1 / 60) == pytest.approx(15.003)
        monitor.reset()
        assert monitor.frame_length(line, 15.002, 1 / 60) == pytest.approx(15.002)


class TestPilotFeedback:

    def test_filter_blend(self):
        fb = PilotFeedback().update(10.0, 10.0, dt=0.1)
        assert fb.left_filtered == pytest.approx(5.0)
        assert fb.left_raw == 10.0

    def test_large_step_tracks_raw(self):
        fb = PilotFeedback().update(40.0, 40.0, dt=1.0)
        assert fb.left_filtered == 40.0
        assert fb.magnitude == 40.0
        assert fb.state == "powered"

    @pytest.mark.parametrize(
        "left, right, state",
        [
            (2.0, 2.0, "idle"),
            (12.0, 2.0, "stall"),
            (50.0, 10.0, "turning_left"),
            (10.0, 50.0, "turning_right"),
            (12.0, 12.0, "powered"),
        ],
    )
    def test_states(self, left, right, state):
        fb = PilotFeedback(FeedbackConfig()).update(left, right, dt=1.0)
        assert fb.state == state

    def test_rates_and_reset(self):
        fb = PilotFeedback()
        fb.update(10.0, 0.0, dt=1.0)
        fb.update(20.0, 0.0, dt=0.5)
        assert fb.left_rate == pytest.approx(20.0)
        fb.reset()
        assert fb.left_filtered == 0.0
        assert fb.state == "idle"
