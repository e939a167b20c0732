"""
Telemetry data model: immutable readings and named datasets.
"""

from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import ALL_CHANNELS


@dataclass(frozen=True)
class Reading:
    """Single telemetry sample. A channel value of None means not recorded."""
    time: datetime
    TrPress: Optional[float] = None
    AnPress: Optional[float] = None
    BhPress: Optional[float] = None
    SlurRate: Optional[float] = None
    CfldRate: Optional[float] = None
    PropCon: Optional[float] = None
    BhPropCon: Optional[float] = None
    NetPress: Optional[float] = None
    TmtB600_3050: Optional[float] = None
    TmtProp: Optional[float] = None
    TmtCfld: Optional[float] = None
    TmtSlur: Optional[float] = None
    B525Conc: Optional[float] = None
    B534Conc: Optional[float] = None
    J604Conc: Optional[float] = None
    U028Conc: Optional[float] = None
    J627Conc: Optional[float] = None
    PcmGuarConc: Optional[float] = None
    J475Conc: Optional[float] = None
    J218Conc: Optional[float] = None

    def value(self, channel: str) -> Optional[float]:
        """Channel value, None when not recorded"""
        if channel not in ALL_CHANNELS:
            raise KeyError(f"Unknown channel: {channel}")
        return getattr(self, channel)

    def channels(self) -> Dict[str, Optional[float]]:
        return {name: getattr(self, name) for name in ALL_CHANNELS}


@dataclass(frozen=True)
class Dataset:
    """
    Named, time-ordered run of readings for one well stage.

    The readings tuple is the source of truth; `frame` is a cached pandas
    view used by the vectorized computations.
    """
    name: str
    readings: Tuple[Reading, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.readings, tuple):
            object.__setattr__(self, "readings", tuple(self.readings))

    def __len__(self) -> int:
        return len(self.readings)

    def __iter__(self) -> Iterator[Reading]:
        return iter(self.readings)

    def __getitem__(self, index: int) -> Reading:
        return self.readings[index]

    @cached_property
    def frame(self) -> pd.DataFrame:
        """Readings as a DataFrame: `time` plus one float column per channel"""
        return readings_to_frame(self.readings)

    @cached_property
    def times(self) -> np.ndarray:
        """Reading times as datetime64[ns], in frame order"""
        return self.frame["time"].to_numpy(dtype="datetime64[ns]")

    @cached_property
    def elapsed_seconds(self) -> np.ndarray:
        """Seconds since the first reading, in frame order"""
        if len(self.times) == 0:
            return np.array([], dtype=float)
        return (self.times - self.times[0]) / np.timedelta64(1, "s")

    @classmethod
    def from_frame(cls, name: str, df: pd.DataFrame) -> "Dataset":
        """Build a dataset from a frame with a `time` column and channel columns"""
        if "time" not in df.columns:
            raise ValueError(f"Missing required column 'time' in dataset {name}")

        present = [c for c in ALL_CHANNELS if c in df.columns]
        readings = []
        for row in df.sort_values("time", kind="stable").itertuples(index=False):
            row_dict = row._asdict()
            values = {
                channel: (None if pd.isna(row_dict[channel]) else float(row_dict[channel]))
                for channel in present
            }
            readings.append(Reading(time=pd.Timestamp(row_dict["time"]).to_pydatetime(), **values))
        return cls(name=name, readings=tuple(readings))


def readings_to_frame(readings: Sequence[Reading]) -> pd.DataFrame:
    """Convert readings to a time-sorted DataFrame, undefined values as NaN"""
    columns: Dict[str, List] = {"time": [r.time for r in readings]}
    for channel in ALL_CHANNELS:
        columns[channel] = [
            np.nan if getattr(r, channel) is None else getattr(r, channel)
            for r in readings
        ]

    df = pd.DataFrame(columns)
    df["time"] = pd.to_datetime(df["time"])
    for channel in ALL_CHANNELS:
        df[channel] = df[channel].astype(float)

    # Stable sort keeps source order for identical timestamps
    return df.sort_values("time", kind="stable").reset_index(drop=True)


def make_dataset(name: str, rows: Sequence[Mapping]) -> Dataset:
    """Build a dataset from mappings with a `time` key and channel keys"""
    readings = []
    for row in rows:
        values = {k: v for k, v in row.items() if k != "time"}
        unknown = set(values) - set(ALL_CHANNELS)
        if unknown:
            raise KeyError(f"Unknown channels: {sorted(unknown)}")
        readings.append(Reading(time=row["time"], **values))
    return Dataset(name=name, readings=tuple(readings))
