"""
Pre-breakdown slope signatures.

A signature is the least-squares slope of each monitored channel over a
time window. Signatures taken just before detected breakdowns are averaged
into a "favorable" signature, and live windows are matched against it.
"""

import logging
from datetime import datetime, timedelta
from typing import (
    Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
)

import numpy as np
import pandas as pd

from .config import MONITORED_CHANNELS, SIGNATURE_CONFIG
from .records import Dataset, Reading, readings_to_frame


logger = logging.getLogger(__name__)

Window = Union[pd.DataFrame, Sequence[Reading]]


class SlopeSignature:
    """
    Immutable mapping of channel name to slope (units per second).

    A slope of None means it could not be computed for the window.
    """

    __slots__ = ("_slopes",)

    def __init__(self, slopes: Optional[Mapping[str, Optional[float]]] = None):
        ordered = {}
        for channel, slope in (slopes or {}).items():
            ordered[channel] = None if slope is None or np.isnan(slope) else float(slope)
        object.__setattr__(self, "_slopes", ordered)

    def __setattr__(self, name, value):
        raise AttributeError("SlopeSignature is immutable")

    def __reduce__(self):
        return (SlopeSignature, (dict(self._slopes),))

    def __len__(self) -> int:
        return len(self._slopes)

    def __contains__(self, channel: object) -> bool:
        return channel in self._slopes

    def __iter__(self) -> Iterator[str]:
        return iter(self._slopes)

    def __getitem__(self, channel: str) -> Optional[float]:
        return self._slopes[channel]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SlopeSignature):
            return NotImplemented
        return self._slopes == other._slopes

    def __hash__(self) -> int:
        return hash(tuple(self._slopes.items()))

    def __repr__(self) -> str:
        return f"SlopeSignature({self._slopes!r})"

    def __str__(self) -> str:
        return ", ".join(
            f"{channel}: {'undefined' if slope is None else f'{slope:.5f}'}"
            for channel, slope in self._slopes.items()
        )

    def get(self, channel: str, default: Optional[float] = None) -> Optional[float]:
        return self._slopes.get(channel, default)

    def items(self) -> List[Tuple[str, Optional[float]]]:
        return list(self._slopes.items())

    def defined(self) -> Dict[str, float]:
        """Only the channels with a numeric slope"""
        return {k: v for k, v in self._slopes.items() if v is not None}

    def to_dict(self) -> Dict[str, Optional[float]]:
        return dict(self._slopes)


class EventSignature(NamedTuple):
    """Slopes observed in the window before one breakdown"""
    event_time: datetime
    signature: SlopeSignature

    def __str__(self) -> str:
        return f"{self.event_time:%H:%M:%S} => {self.signature}"


def _window_frame(window: Window) -> pd.DataFrame:
    if isinstance(window, pd.DataFrame):
        return window
    return readings_to_frame(list(window))


def _ols_slope(x: np.ndarray, y: np.ndarray) -> Optional[float]:
    """Closed-form least-squares slope, None when degenerate"""
    mask = ~np.isnan(y)
    x, y = x[mask], y[mask]
    n = len(x)
    if n < 2:
        return None

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_xx = (x * x).sum()

    denominator = n * sum_xx - sum_x * sum_x
    if abs(denominator) < SIGNATURE_CONFIG["min_slope_denominator"]:
        return None

    return float((n * sum_xy - sum_x * sum_y) / denominator)


def slopes_in_window(
    window: Window,
    channels: Sequence[str] = MONITORED_CHANNELS
) -> SlopeSignature:
    """
    Slope of every monitored channel against seconds elapsed since the
    window's first reading.
    """
    df = _window_frame(window)
    if len(df) < 2:
        return SlopeSignature({channel: None for channel in channels})

    time = pd.to_datetime(df["time"])
    x = (time - time.iloc[0]).dt.total_seconds().to_numpy(dtype=float)
    values = {
        channel: df[channel].to_numpy(dtype=float)
        for channel in channels
        if channel in df.columns
    }
    return slopes_from_arrays(x, values, channels)


def slopes_from_arrays(
    seconds: np.ndarray,
    values: Mapping[str, np.ndarray],
    channels: Sequence[str] = MONITORED_CHANNELS
) -> SlopeSignature:
    """Slopes from aligned arrays; `seconds` is rebased to its first entry"""
    if len(seconds) < 2:
        return SlopeSignature({channel: None for channel in channels})

    x = seconds - seconds[0]
    return SlopeSignature({
        channel: _ols_slope(x, values[channel]) if channel in values else None
        for channel in channels
    })


def _to_datetime64(value: datetime) -> np.datetime64:
    return pd.Timestamp(value).to_datetime64()


def window_slice(data: Dataset, start: datetime, end: datetime) -> pd.DataFrame:
    """Readings with start <= time <= end (times must be sorted)"""
    times = data.times
    lo = int(np.searchsorted(times, _to_datetime64(start), side="left"))
    hi = int(np.searchsorted(times, _to_datetime64(end), side="right"))
    return data.frame.iloc[lo:hi]


def window_before_events(
    data: Dataset,
    events: Iterable[datetime],
    window_seconds: float = SIGNATURE_CONFIG["pre_breakdown_window_seconds"],
    channels: Sequence[str] = MONITORED_CHANNELS
) -> List[EventSignature]:
    """Slope signature of the `window_seconds` leading up to each event"""
    results = []
    lookback = timedelta(seconds=window_seconds)

    for event in events:
        window = window_slice(data, event - lookback, event)
        if len(window) < 2:
            logger.debug(f"{data.name}: too few readings before {event}, skipping")
            continue
        results.append(EventSignature(event, slopes_in_window(window, channels)))

    return results


def _as_signature(item: Union[EventSignature, SlopeSignature]) -> SlopeSignature:
    return item.signature if isinstance(item, EventSignature) else item


def _average(signatures: Iterable[SlopeSignature]) -> SlopeSignature:
    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}

    for signature in signatures:
        for channel, slope in signature.defined().items():
            sums[channel] = sums.get(channel, 0.0) + slope
            counts[channel] = counts.get(channel, 0) + 1

    ordered = [c for c in MONITORED_CHANNELS if c in sums]
    ordered += [c for c in sums if c not in MONITORED_CHANNELS]
    return SlopeSignature({c: sums[c] / counts[c] for c in ordered})


def per_dataset_average(
    event_signatures: Iterable[Union[EventSignature, SlopeSignature]]
) -> SlopeSignature:
    """Average defined slopes over one dataset's event windows"""
    return _average(_as_signature(item) for item in event_signatures)


def average_across_datasets(
    per_dataset: Iterable[Iterable[Union[EventSignature, SlopeSignature]]]
) -> SlopeSignature:
    """
    Average every defined slope contributed by every event window of every
    dataset. Each window counts once, regardless of its dataset.
    """
    return _average(
        _as_signature(item)
        for dataset_signatures in per_dataset
        for item in dataset_signatures
    )


def is_similar(
    candidate: SlopeSignature,
    reference: SlopeSignature,
    relative_tolerance: float = SIGNATURE_CONFIG["relative_tolerance"],
    absolute_tolerance: float = SIGNATURE_CONFIG["absolute_tolerance"],
    required_match_ratio: float = SIGNATURE_CONFIG["required_match_ratio"]
) -> bool:
    """
    Whether enough channels of `candidate` follow `reference`.

    Channels missing from the candidate or undefined on either side are not
    matches, but still count toward the reference total.
    """
    total = len(reference)
    if total == 0:
        return False

    near_zero = SIGNATURE_CONFIG["near_zero_slope"]
    epsilon = SIGNATURE_CONFIG["relative_epsilon"]
    matches = 0

    for channel, ref_slope in reference.items():
        if channel not in candidate:
            continue
        test_slope = candidate[channel]
        if test_slope is None or ref_slope is None:
            continue

        if abs(ref_slope) < near_zero and abs(test_slope) < near_zero:
            matches += 1
            continue

        abs_diff = abs(test_slope - ref_slope)
        ratio = abs_diff / (abs(ref_slope) + epsilon)
        if ratio <= relative_tolerance or abs_diff <= absolute_tolerance:
            matches += 1

    return matches / total >= required_match_ratio


class SignatureAnalyzer:
    """
    Slope-signature analysis with fixed lookback and similarity tolerances.
    """

    def __init__(
        self,
        window_seconds: float = SIGNATURE_CONFIG["pre_breakdown_window_seconds"],
        relative_tolerance: float = SIGNATURE_CONFIG["relative_tolerance"],
        absolute_tolerance: float = SIGNATURE_CONFIG["absolute_tolerance"],
        required_match_ratio: float = SIGNATURE_CONFIG["required_match_ratio"],
        channels: Sequence[str] = MONITORED_CHANNELS
    ):
        self.window_seconds = window_seconds
        self.relative_tolerance = relative_tolerance
        self.absolute_tolerance = absolute_tolerance
        self.required_match_ratio = required_match_ratio
        self.channels = list(channels)

    def slopes_in_window(self, window: Window) -> SlopeSignature:
        return slopes_in_window(window, self.channels)

    def window_before_events(
        self,
        data: Dataset,
        events: Iterable[datetime]
    ) -> List[EventSignature]:
        return window_before_events(data, events, self.window_seconds, self.channels)

    def average_across_datasets(
        self,
        per_dataset: Iterable[Iterable[Union[EventSignature, SlopeSignature]]]
    ) -> SlopeSignature:
        return average_across_datasets(per_dataset)

    def is_similar(self, candidate: SlopeSignature, reference: SlopeSignature) -> bool:
        return is_similar(
            candidate,
            reference,
            relative_tolerance=self.relative_tolerance,
            absolute_tolerance=self.absolute_tolerance,
            required_match_ratio=self.required_match_ratio,
        )
