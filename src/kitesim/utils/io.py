"""
History export and JSON configuration loading.
"""
from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from kitesim.config import SimulationConfig


def save_simulation_history(history: list[dict[str, Any]], filepath: str) -> None:
    """
    Save a list of per-step dictionaries to a CSV file.

    Parameters
    ----------
    history : list[dict[str, Any]]
        One row per step, e.g. ``StepResult.as_row()`` output
    filepath : str
        Destination path; missing parent folders are created

    Raises
    ------
    ValueError
        If ``history`` is empty.
    """
    if not history:
        raise ValueError("Simulation history is empty. Nothing to save.")

    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame(history)
    df.to_csv(path, index=False)
    print(f"Simulation results saved to {path.absolute()}")


def _apply_section(target: Any, values: dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(target)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown keys in section '{section}': {sorted(unknown)}")
    for key, value in values.items():
        current = getattr(target, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ValueError(f"Section '{section}.{key}' must be an object")
            _apply_section(current, value, f"{section}.{key}")
        elif isinstance(current, tuple):
            setattr(target, key, tuple(float(v) for v in value))
        else:
            setattr(target, key, value)


def load_simulation_config(filepath: str) -> SimulationConfig:
    """
    Build a SimulationConfig from a JSON file of nested sections.

    Sections mirror the SimulationConfig attributes ("kite", "bridles",
    "lines", "solver", ...). Missing keys keep their defaults.

    Parameters
    ----------
    filepath : str
        JSON file whose top level is an object of sections

    Returns
    -------
    SimulationConfig
        Defaults overridden by the file, validated.

    Raises
    ------
    ValueError
        On an unknown section or key, or a value that fails validation.
    """
    path = Path(filepath)
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be an object")

    config = SimulationConfig()
    _apply_section(config, data, "root")
    # Re-derive inertia when only the mass or dimensions were overridden
    kite_section = data.get("kite", {})
    if "inertia" not in kite_section:
        k = config.kite
        k.inertia = k.mass * (k.wingspan**2 + k.chord**2) / 24.0
    config.validate()
    return config
