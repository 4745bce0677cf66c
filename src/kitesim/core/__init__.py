"""Trilateration, constraint solver, integrator, diagnostics and the simulation driver."""
