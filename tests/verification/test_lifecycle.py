"""
Lifecycle Verification Tests.

Reset must be indistinguishable from a fresh start: after any history, a
reset followed by one step gives the same state and diagnostics as one
step of a newly built simulation.
"""

import numpy as np

DT = 1.0 / 60.0
ZERO = np.zeros(3)


def _first_step(sim):
    return sim.step(ZERO, ZERO, dt=DT)


class TestReset:

    def test_reset_matches_fresh_start(self, make_hanging_sim):
        fresh = make_hanging_sim()
        expected = _first_step(fresh)

        used = make_hanging_sim()
        for i in range(100):
            force = np.array([3.0, 0.5 * np.sin(i * 0.1), 5.0])
            used.step(force, np.array([0.0, 0.0, 0.2]), dt=DT)
        used.reset()
        got = _first_step(used)

        assert got.t == expected.t
        assert np.array_equal(got.state.position, expected.state.position)
        assert np.array_equal(got.state.orientation, expected.state.orientation)
        assert np.array_equal(got.state.velocity, expected.state.velocity)
        assert np.array_equal(got.state.angular_velocity, expected.state.angular_velocity)
        assert got.convergence.final_max_error == expected.convergence.final_max_error
        assert got.tensions.left_total == expected.tensions.left_total
        assert got.tensions.left_rate == expected.tensions.left_rate
        assert used.feedback.left_filtered == fresh.feedback.left_filtered

    def test_reset_restores_handles(self, make_hanging_sim):
        sim = make_hanging_sim()
        default = sim.config.default_handles()
        sim.step(ZERO, ZERO, handles=(default[0] + 1.0, default[1] + 1.0), dt=DT)
        sim.reset()
        assert np.array_equal(sim.handles[0], default[0])

    def test_reset_twice_is_stable(self, make_hanging_sim):
        sim = make_hanging_sim()
        sim.run(duration=0.5, dt=DT, log_interval=0.0)
        sim.reset()
        a = _first_step(sim)
        sim.reset()
        b = _first_step(sim)
        assert np.array_equal(a.state.position, b.state.position)
