import numpy as np
import pytest

from kitesim.config import BridleLengths, DiagnosticsConfig
from kitesim.core.diagnostics import (
    ConstraintError,
    PBDDiagnostics,
    compute_flight_sphere,
    iteration_metrics,
)

ORIGIN = np.zeros(3)


def _err(name, current, target=15.0):
    return ConstraintError.from_lengths(name, current, target, unilateral=True)


@pytest.fixture
def diagnostics(sink):
    return PBDDiagnostics(DiagnosticsConfig(), sink=sink)


class TestConstraintError:

    def test_bilateral(self):
        e = ConstraintError.from_lengths("line_left", 14.9, 15.0)
        assert e.error == pytest.approx(0.1)
        assert e.relative_error == pytest.approx(0.1 / 15.0)

    def test_unilateral_ignores_slack(self):
        assert _err("line_left", 14.0).error == 0.0
        assert _err("line_left", 15.2).error == pytest.approx(0.2)

    def test_relative_error_floor(self):
        e = ConstraintError.from_lengths("line_left", 0.002, 0.0)
        assert e.relative_error == pytest.approx(2.0)


class TestIterationMetrics:

    def test_empty_is_converged(self):
        m = iteration_metrics(0, [])
        assert m.converged
        assert m.constraint_count == 0

    def test_summary(self):
        m = iteration_metrics(3, [_err("a", 15.005), _err("b", 15.02)])
        assert m.iteration == 3
        assert m.max_error == pytest.approx(0.02)
        assert m.avg_error == pytest.approx(0.0125)
        assert m.max_relative_error == pytest.approx(0.02 / 15.0 * 100.0)
        assert not m.converged

    def test_converged_below_tolerance(self):
        assert iteration_metrics(0, [_err("a", 15.005)], tolerance=0.01).converged


class TestHistory:

    def test_divergence_on_three_increasing(self, diagnostics):
        for cur in (15.01, 15.02, 15.03):
            diagnostics.record_errors(0, [_err("a", cur)])
        assert diagnostics.analyze().diverged

    def test_flat_errors_do_not_diverge(self, diagnostics):
        for cur in (15.02, 15.02, 15.02):
            diagnostics.record_errors(0, [_err("a", cur)])
        result = diagnostics.analyze()
        assert not result.diverged
        assert result.final_max_error == pytest.approx(0.02)

    def test_rounding_noise_is_not_divergence(self, diagnostics):
        for cur in (15.0 + 1e-12, 15.0 + 2e-12, 15.0 + 4e-12):
            diagnostics.record_errors(0, [_err("a", cur)])
        assert not diagnostics.analyze().diverged

    def test_history_is_bounded(self, sink):
        diag = PBDDiagnostics(DiagnosticsConfig(history_size=4), sink=sink)
        for i in range(10):
            diag.record_errors(i, [_err("a", 15.0)])
        assert len(diag.history) == 4
        assert diag.history[0].iteration == 6

    def test_empty_history(self, diagnostics):
        result = diagnostics.analyze()
        assert result.iterations == []
        assert not result.diverged

    def test_critical_errors(self, diagnostics):
        diagnostics.record_errors(0, [_err("a", 15.0001), _err("b", 15.05)])
        assert [e.name for e in diagnostics.critical_errors()] == ["b"]

    def test_reset(self, diagnostics):
        diagnostics.record_errors(0, [_err("a", 15.05)])
        diagnostics.report(0.0, ORIGIN, ORIGIN, 15.65)
        diagnostics.reset()
        assert not diagnostics.history
        assert diagnostics.last_errors == []
        assert diagnostics.report(0.1, ORIGIN, ORIGIN, 15.65) is not None


class TestReport:

    def test_throttled_by_sim_time(self, diagnostics, sink):
        diagnostics.record_errors(0, [_err("a", 15.0)])
        assert diagnostics.report(0.0, ORIGIN, ORIGIN, 15.65) is not None
        assert diagnostics.report(0.5, ORIGIN, ORIGIN, 15.65) is None
        assert diagnostics.report(1.0, ORIGIN, ORIGIN, 15.65) is not None
        assert len(sink.of_level("info")) == 2

    def test_quiet_when_converged(self, diagnostics, sink):
        diagnostics.record_errors(0, [_err("a", 15.0)])
        diagnostics.report(0.0, np.array([0.0, 0.0, 10.0]), ORIGIN, 15.65)
        assert sink.of_level("warn") == []
        assert sink.of_level("error") == []

    def test_incomplete_convergence_warns(self, diagnostics, sink):
        diagnostics.record_errors(0, [_err("a", 15.2)])
        diagnostics.report(0.0, ORIGIN, ORIGIN, 15.65)
        messages = [m for _, _, m in sink.of_level("warn")]
        assert any("Convergence incomplete" in m for m in messages)
        assert any(m.startswith("a:") for m in messages)

    def test_divergence_is_an_error(self, diagnostics, sink):
        for cur in (15.01, 15.02, 15.03):
            diagnostics.record_errors(0, [_err("a", cur)])
        result = diagnostics.report(0.0, ORIGIN, ORIGIN, 15.65)
        assert result.diverged
        assert any("Divergence" in m for _, _, m in sink.of_level("error"))

    def test_escape_is_an_error(self, diagnostics, sink):
        diagnostics.record_errors(0, [_err("a", 15.0)])
        diagnostics.report(0.0, np.array([0.0, 0.0, 16.5]), ORIGIN, 15.65)
        assert any("escaping" in m for _, _, m in sink.of_level("error"))

    def test_within_margin_is_not_escape(self, diagnostics, sink):
        diagnostics.record_errors(0, [_err("a", 15.0)])
        diagnostics.report(0.0, np.array([0.0, 0.0, 16.0]), ORIGIN, 15.65)
        assert sink.of_level("error") == []


class TestFlightSphere:

    RADIUS = 15.65

    def _sphere(self, kite, **kwargs):
        return compute_flight_sphere(np.asarray(kite), ORIGIN, 15.0, BridleLengths(), **kwargs)

    def test_radius_includes_bridles(self):
        fs = self._sphere([0.0, 0.0, 10.0])
        assert fs.radius == pytest.approx(self.RADIUS)
        assert np.allclose(fs.zenith, [0.0, 0.0, self.RADIUS])
        assert fs.tension_factor == pytest.approx(10.0 / self.RADIUS)

    def test_zenith(self):
        fs = self._sphere([0.0, 0.0, self.RADIUS])
        assert fs.zone == "zenith"
        assert fs.distance_to_zenith == pytest.approx(0.0)
        assert fs.power_factor == pytest.approx(0.0)
        assert fs.tension_factor == pytest.approx(1.0)

    def test_power_zone(self):
        fs = self._sphere([-13.0, 0.0, 0.4 * self.RADIUS])
        assert fs.zone == "power"
        assert fs.power_factor == pytest.approx(0.6)

    def test_edge_of_window(self):
        fs = self._sphere([0.0, 15.0, 1.0])
        assert fs.wind_angle_deg == pytest.approx(90.0)
        assert fs.zone == "edge"

    def test_low_downwind_is_transition(self):
        fs = self._sphere([-15.0, 0.0, 1.0])
        assert fs.wind_angle_deg < 10.0
        assert fs.zone == "transition"

    def test_custom_wind_direction(self):
        fs = self._sphere([0.0, 15.0, 1.0], wind_direction=np.array([0.0, 2.0, 0.0]))
        assert fs.wind_angle_deg < 10.0
        assert fs.zone == "transition"
