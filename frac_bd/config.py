"""
Configuration management for the fracturing breakdown detection pipeline.

Contains channel definitions, physical defaults, detection thresholds, and
processing/logging settings.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Mapping


# Channels of a telemetry record, in source column order
ALL_CHANNELS: List[str] = [
    "TrPress",
    "AnPress",
    "BhPress",
    "SlurRate",
    "CfldRate",
    "PropCon",
    "BhPropCon",
    "NetPress",
    "TmtB600_3050",
    "TmtProp",
    "TmtCfld",
    "TmtSlur",
    "B525Conc",
    "B534Conc",
    "J604Conc",
    "U028Conc",
    "J627Conc",
    "PcmGuarConc",
    "J475Conc",
    "J218Conc",
]

# Columns the source format may leave out entirely
OPTIONAL_CHANNELS: List[str] = ["TmtB600_3050", "J218Conc"]

# Channels used for pre-breakdown trend analysis
MONITORED_CHANNELS: List[str] = [
    "TrPress",
    "AnPress",
    "BhPress",
    "SlurRate",
    "PropCon",
    "BhPropCon",
    "NetPress",
]

RATE_CHANNEL = "SlurRate"
BOTTOMHOLE_PRESSURE_CHANNEL = "BhPress"

# Unit conversions
BBL_PER_MIN_TO_M3_DIVISOR = 8.3864  # bbl/min -> m3/min
SECONDS_PER_MINUTE = 60.0
CENTIPOISE_TO_PA_S = 1e-3

# Permeability estimator
DETECTION_CONFIG: Dict = {
    "k_window_size": 5,             # Trailing k samples averaged per step
    "k_spike_upper_ratio": 5.0,     # deltaK above avgK * ratio is treated as noise
    "min_denominator": 1e-6,        # |(Pk - Pc) * Rc| below this is degenerate
}

# Slope signature configuration
SIGNATURE_CONFIG: Dict = {
    "pre_breakdown_window_seconds": 30,   # Lookback used when learning
    "trend_window_seconds": 60,           # Lookback used when predicting
    "trend_offset_seconds": 30,           # Predicted breakdown lag after a match
    "min_slope_denominator": 1e-8,
    "near_zero_slope": 1e-4,
    "relative_epsilon": 1e-6,
    "relative_tolerance": 0.1,
    "absolute_tolerance": 0.01,
    "required_match_ratio": 0.9,
}

# Processing configuration
PROCESSING_CONFIG: Dict = {
    "max_workers": int(os.environ.get("FRAC_BD_MAX_WORKERS", "4")),  # Parallel dataset workers
    "file_pattern": "*.txt",
    "header_lines": 3,            # Column names, units, separator
    "min_fields": 19,
    "fields_with_tmt": 21,        # Field count when TmtB600_3050 is present
    "timestamp_format": "%m:%d:%Y:%H:%M:%S",
}

# Logging configuration
LOGGING_CONFIG: Dict = {
    "level": logging.INFO,
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "datefmt": "%Y-%m-%d %H:%M:%S"
}


@dataclass(frozen=True)
class DetectionSettings:
    """Settings for permeability-based breakdown detection"""
    min_breakdown_duration_seconds: float = 30.0
    min_k_increase_ratio: float = 0.01       # >1%
    data_skip_proportion: float = 0.2        # 20%
    min_rate_threshold: float = 0.1          # bbl/min
    filtration_radius: float = 0.5           # m
    reservoir_pressure: float = 3000.0       # psi
    fluid_viscosity: float = 2.5             # cP

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "DetectionSettings":
        """Build settings from a partial mapping, defaults fill the rest"""
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown detection settings: {sorted(unknown)}")
        return cls(**{k: float(v) for k, v in values.items()})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def validate(self) -> "DetectionSettings":
        """Check basic numeric sanity"""
        if self.min_breakdown_duration_seconds < 0:
            raise ValueError("min_breakdown_duration_seconds must be non-negative")
        if self.min_k_increase_ratio < 0:
            raise ValueError("min_k_increase_ratio must be non-negative")
        if not 0.0 <= self.data_skip_proportion < 1.0:
            raise ValueError("data_skip_proportion must be in [0, 1)")
        if self.min_rate_threshold < 0:
            raise ValueError("min_rate_threshold must be non-negative")
        if self.filtration_radius <= 0:
            raise ValueError("filtration_radius must be positive")
        if self.fluid_viscosity <= 0:
            raise ValueError("fluid_viscosity must be positive")
        return self


def validate_config() -> bool:
    """Validate configuration consistency"""
    if not set(MONITORED_CHANNELS) <= set(ALL_CHANNELS):
        raise ValueError("Monitored channels must be a subset of all channels")

    if not set(OPTIONAL_CHANNELS) <= set(ALL_CHANNELS):
        raise ValueError("Optional channels must be a subset of all channels")

    if DETECTION_CONFIG["k_window_size"] < 1:
        raise ValueError("k_window_size must be at least 1")

    if PROCESSING_CONFIG["max_workers"] < 1:
        raise ValueError("max_workers must be at least 1")

    return True


# Validate configuration on import
validate_config()
