from .plotting import plot_line_tensions, plot_trajectory_3d
