"""
Physics-based breakdown detection.

Estimates formation permeability from slurry rate and bottomhole pressure
using a simplified radial-flow relation:

    k = (mu / (4 * pi)) * Q / ((Pk - Pc) * Rc)

A sudden relative rise of k over its trailing average marks the start of
fracturing (formation breakdown).
"""

import logging
import math
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional

import numpy as np
import pandas as pd

from .config import (
    BBL_PER_MIN_TO_M3_DIVISOR,
    BOTTOMHOLE_PRESSURE_CHANNEL,
    CENTIPOISE_TO_PA_S,
    DETECTION_CONFIG,
    RATE_CHANNEL,
    SECONDS_PER_MINUTE,
    DetectionSettings,
)
from .records import Dataset


logger = logging.getLogger(__name__)


def flow_rate_m3s(rate_bbl_min: float) -> float:
    """Convert slurry rate from bbl/min to m3/s"""
    return rate_bbl_min / BBL_PER_MIN_TO_M3_DIVISOR / SECONDS_PER_MINUTE


def permeability_estimate(
    rate_bbl_min: float,
    bottomhole_pressure: float,
    settings: DetectionSettings
) -> Optional[float]:
    """
    Permeability indicator for a single sample.

    Returns None when the sample is degenerate (non-positive flow or
    near-zero pressure differential).
    """
    q = flow_rate_m3s(rate_bbl_min)
    denominator = (bottomhole_pressure - settings.reservoir_pressure) * settings.filtration_radius

    if abs(denominator) < DETECTION_CONFIG["min_denominator"] or q <= 0:
        return None

    mu = settings.fluid_viscosity * CENTIPOISE_TO_PA_S
    return (mu / (4 * math.pi)) * (q / denominator)


class BreakdownDetector:
    """
    Detects breakdown moments in a single dataset.

    Scanning rules:
    - The first `data_skip_proportion` of the series and the last half of
      that proportion are ignored (startup/shutdown transients)
    - Samples within `min_breakdown_duration_seconds` of the previous
      detection are skipped
    - Samples below `min_rate_threshold` are skipped
    - A detection fires when k exceeds its 5-sample trailing mean by more
      than `min_k_increase_ratio` but by less than 5x (noise spike)
    """

    def __init__(self, settings: Optional[DetectionSettings] = None):
        self.settings = (settings or DetectionSettings()).validate()
        self.window_size = int(DETECTION_CONFIG["k_window_size"])
        self.spike_upper_ratio = DETECTION_CONFIG["k_spike_upper_ratio"]

    def detect(self, data: Dataset) -> List[datetime]:
        """Return breakdown times in chronological order"""
        n = len(data)
        if n < 2:
            return []

        df = data.frame
        times = [pd.Timestamp(t).to_pydatetime() for t in df["time"]]
        rates = df[RATE_CHANNEL].to_numpy(dtype=float)
        pressures = df[BOTTOMHOLE_PRESSURE_CHANNEL].to_numpy(dtype=float)

        skip = self.settings.data_skip_proportion
        start_index = int(n * skip)
        end_index = n - int(n * skip / 2)

        breakdowns: List[datetime] = []
        k_window: Deque[float] = deque(maxlen=self.window_size)
        last_breakdown: Optional[datetime] = None
        skipped_degenerate = 0

        for i in range(start_index + 1, end_index):
            current_time = times[i]

            if last_breakdown is not None and (
                (current_time - last_breakdown).total_seconds()
                < self.settings.min_breakdown_duration_seconds
            ):
                continue

            rate = rates[i]
            if np.isnan(rate) or rate < self.settings.min_rate_threshold:
                continue

            pressure = pressures[i]
            if np.isnan(pressure):
                skipped_degenerate += 1
                continue

            k = permeability_estimate(float(rate), float(pressure), self.settings)
            if k is None:
                skipped_degenerate += 1
                continue

            k_window.append(k)
            if len(k_window) < self.window_size:
                continue

            avg_k = sum(k_window) / len(k_window)
            delta_k = k - avg_k

            # Sensitive to small rises, not to single-sample spikes
            if avg_k * self.settings.min_k_increase_ratio < delta_k < avg_k * self.spike_upper_ratio:
                breakdowns.append(current_time)
                last_breakdown = current_time
                # Fresh window so the same peak cannot fire again
                k_window = deque(maxlen=self.window_size)

        logger.debug(
            f"{data.name}: scanned {max(0, end_index - start_index - 1)} of {n} readings, "
            f"{skipped_degenerate} degenerate, {len(breakdowns)} breakdowns"
        )
        return breakdowns


def detect_breakdowns(
    data: Dataset,
    settings: Optional[DetectionSettings] = None
) -> List[datetime]:
    """Detect breakdown times in a dataset"""
    return BreakdownDetector(settings).detect(data)
