import os
import sys

import numpy as np
import pytest

# Get the path to the project root (one level up from 'tests')
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(project_root, 'src')

# Add 'src' to sys.path
sys.path.insert(0, src_path)

from kitesim.config import SimulationConfig  # noqa: E402
from kitesim.dynamics.geometry import KiteGeometry  # noqa: E402
from kitesim.logger import RecordingSink  # noqa: E402


@pytest.fixture
def config():
    return SimulationConfig()


@pytest.fixture
def geometry(config):
    return KiteGeometry.from_specs(config.kite, config.bridles)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def identity():
    return np.array([0.0, 0.0, 0.0, 1.0])
