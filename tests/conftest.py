"""
Pytest configuration for breakdown detection tests.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from frac_bd.config import MONITORED_CHANNELS
from frac_bd.records import Dataset, make_dataset


BASE_TIME = datetime(2024, 5, 1, 10, 0, 0)


def build_stage(
    name: str,
    n: int = 200,
    rate: float = 10.0,
    pressure: Callable[[int], float] = lambda i: 5000.0,
    extra: Optional[Callable[[int], Dict[str, float]]] = None,
    step_seconds: float = 1.0,
) -> Dataset:
    """Synthetic stage: constant channels, configurable rate and bottomhole pressure"""
    rows = []
    for i in range(n):
        row = {channel: 1.0 for channel in MONITORED_CHANNELS}
        row.update({
            "time": BASE_TIME + timedelta(seconds=i * step_seconds),
            "SlurRate": rate,
            "BhPress": pressure(i),
        })
        if extra:
            row.update(extra(i))
        rows.append(row)
    return make_dataset(name, rows)


def step_pressure(step_index: int, before: float = 5000.0, after: float = 4800.0):
    """Bottomhole pressure that drops once, raising the permeability estimate"""
    return lambda i: before if i < step_index else after


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def step_stage() -> Dataset:
    """200 one-second readings with one permeability jump at index 100"""
    return build_stage("stage_step", pressure=step_pressure(100))


@pytest.fixture
def flat_stage() -> Dataset:
    return build_stage("stage_flat")
