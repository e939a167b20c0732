"""
Breakdown prediction from learned pre-breakdown trends.

Workflow:
1. detect_all - physics-based detection over a labeled set of datasets
2. learn_favorable_conditions - average slope signature before detections
3. apply_to_new_dataset - physics detection plus trend-signature matching
   on a new dataset

Each step takes and returns an immutable PredictionSession, so the
detect -> learn -> apply ordering is carried by the value itself.
FracturePredictionModule wraps the same steps behind a stateful object.

Trend predictions are not debounced: consecutive matching windows each
produce a prediction, unlike physics detections which honor
`min_breakdown_duration_seconds`.
"""

import logging
import threading
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .config import MONITORED_CHANNELS, PROCESSING_CONFIG, SIGNATURE_CONFIG, DetectionSettings
from .detection import BreakdownDetector
from .errors import InvalidInputError, NotAnalyzedError, SignatureNotLearnedError
from .metrics import hausdorff_distance
from .records import Dataset
from .signatures import (
    SlopeSignature,
    average_across_datasets,
    is_similar,
    slopes_from_arrays,
    window_before_events,
)
from .utils import timing_decorator


logger = logging.getLogger(__name__)

Datasets = Union[Mapping[str, Dataset], Iterable[Dataset]]


@dataclass(frozen=True)
class PredictionSession:
    """
    Detections per dataset, the settings they were found with, and the
    favorable signature learned from them
    """
    breakdowns: Mapping[str, Tuple[datetime, ...]] = field(default_factory=dict)
    favorable: Optional[SlopeSignature] = None
    settings: DetectionSettings = field(default_factory=DetectionSettings)

    def __post_init__(self):
        frozen = {name: tuple(events) for name, events in self.breakdowns.items()}
        object.__setattr__(self, "breakdowns", MappingProxyType(frozen))

    @property
    def is_learned(self) -> bool:
        return self.favorable is not None and len(self.favorable) > 0

    def has_detections(self, name: str) -> bool:
        return name in self.breakdowns


class PredictionResult(NamedTuple):
    """Breakdowns found on a new dataset by both methods"""
    physics_events: List[datetime]
    trend_events: List[datetime]


def _as_mapping(datasets: Datasets) -> Dict[str, Dataset]:
    if isinstance(datasets, Mapping):
        return dict(datasets)
    return {data.name: data for data in datasets}


def _detect_worker(name: str, data: Dataset, settings: DetectionSettings) -> Tuple[str, List[datetime]]:
    """Worker function for parallel detection"""
    return name, BreakdownDetector(settings).detect(data)


@timing_decorator
def detect_all(
    datasets: Datasets,
    settings: Optional[DetectionSettings] = None,
    max_workers: int = PROCESSING_CONFIG["max_workers"]
) -> PredictionSession:
    """
    Run physics-based detection on every dataset.

    The returned session replaces any previous detections and drops any
    previously learned signature. Results are merged only after every
    dataset has finished.
    """
    settings = (settings or DetectionSettings()).validate()
    by_name = _as_mapping(datasets)
    results: Dict[str, List[datetime]] = {}

    if max_workers > 1 and len(by_name) > 1:
        with ProcessPoolExecutor(max_workers=min(max_workers, len(by_name))) as executor:
            future_to_name = {
                executor.submit(_detect_worker, name, data, settings): name
                for name, data in by_name.items()
            }
            for future in as_completed(future_to_name):
                name, events = future.result()
                results[name] = events
    else:
        detector = BreakdownDetector(settings)
        for name, data in by_name.items():
            results[name] = detector.detect(data)

    # Keep input order regardless of completion order
    breakdowns = {name: results[name] for name in by_name}
    total = sum(len(events) for events in breakdowns.values())
    logger.info(f"Detected {total} breakdowns across {len(breakdowns)} datasets")

    return PredictionSession(breakdowns=breakdowns, favorable=None, settings=settings)


def learn_favorable_conditions(
    session: PredictionSession,
    datasets: Datasets,
    window_seconds: float = SIGNATURE_CONFIG["pre_breakdown_window_seconds"]
) -> PredictionSession:
    """
    Average pre-breakdown slope signatures over the given datasets.

    Datasets without stored detections are skipped; if none of them has
    been analyzed, NotAnalyzedError is raised.
    """
    by_name = _as_mapping(datasets)
    analyzed = [name for name in by_name if session.has_detections(name)]

    if not analyzed:
        raise NotAnalyzedError(
            "Breakdowns have not been detected for any of the given datasets",
            context={"datasets": sorted(by_name)},
        )

    skipped = len(by_name) - len(analyzed)
    if skipped:
        logger.debug(f"Skipping {skipped} datasets without detections")

    per_dataset = []
    for name in analyzed:
        event_signatures = window_before_events(
            by_name[name], session.breakdowns[name], window_seconds
        )
        logger.debug(f"{name}: {len(event_signatures)} usable pre-breakdown windows")
        per_dataset.append(event_signatures)

    favorable = average_across_datasets(per_dataset)
    logger.info(
        f"Learned favorable signature from {len(analyzed)} datasets "
        f"({len(favorable)} channels)"
    )
    return replace(session, favorable=favorable)


def trend_breakdowns(
    data: Dataset,
    favorable: SlopeSignature,
    window_seconds: float = SIGNATURE_CONFIG["trend_window_seconds"],
    offset_seconds: float = SIGNATURE_CONFIG["trend_offset_seconds"]
) -> List[datetime]:
    """
    Predict breakdowns by matching each trailing window to `favorable`.

    For every reading, the readings of the preceding `window_seconds` are
    fitted; on a match, the first reading at or after
    `offset_seconds` later is reported.
    """
    n = len(data)
    if n == 0:
        return []

    times = data.times
    seconds = data.elapsed_seconds
    stamps = data.frame["time"]
    columns = {channel: data.frame[channel].to_numpy(dtype=float) for channel in MONITORED_CHANNELS}
    lookback = np.timedelta64(int(window_seconds * 1e9), "ns")
    offset = np.timedelta64(int(offset_seconds * 1e9), "ns")

    predictions: List[datetime] = []
    for i in range(n):
        current = times[i]
        lo = int(np.searchsorted(times, current - lookback, side="left"))
        hi = int(np.searchsorted(times, current, side="right"))
        if hi - lo < 2:
            continue

        candidate = slopes_from_arrays(
            seconds[lo:hi],
            {channel: values[lo:hi] for channel, values in columns.items()},
        )
        if not is_similar(candidate, favorable):
            continue

        after = int(np.searchsorted(times, current + offset, side="left"))
        if after < n:
            predictions.append(stamps.iloc[after].to_pydatetime())

    return predictions


def apply_to_new_dataset(
    session: PredictionSession,
    data: Dataset,
    settings: Optional[DetectionSettings] = None
) -> PredictionResult:
    """
    Physics-based and trend-based breakdowns for a new dataset.

    Physics detection uses the settings the session was detected with
    unless `settings` is given.
    """
    if not session.is_learned:
        raise SignatureNotLearnedError(
            "Favorable conditions have not been learned yet",
            context={"dataset": data.name},
        )

    physics_events = BreakdownDetector(settings or session.settings).detect(data)
    trend_events = trend_breakdowns(data, session.favorable)

    logger.info(
        f"{data.name}: {len(physics_events)} physics-based, "
        f"{len(trend_events)} trend-based breakdowns"
    )
    return PredictionResult(physics_events, trend_events)


def compare_methods(result: PredictionResult) -> Optional[float]:
    """
    Hausdorff distance between both methods, None if either found nothing.

    Reporting helper for summaries and the CLI. Use hausdorff_distance
    directly to get InvalidInputError on an empty set.
    """
    try:
        return hausdorff_distance(result.physics_events, result.trend_events)
    except InvalidInputError as e:
        logger.warning(f"Cannot compare detection methods: {e.message}")
        return None


def breakdowns_frame(session: PredictionSession) -> pd.DataFrame:
    """One row per detected breakdown"""
    rows = [
        {"dataset": name, "event_index": i, "time": event}
        for name, events in session.breakdowns.items()
        for i, event in enumerate(events)
    ]
    return pd.DataFrame(rows, columns=["dataset", "event_index", "time"])


class FracturePredictionModule:
    """
    Stateful wrapper around the session workflow.

    The current session is swapped as a whole under a lock, so readers never
    see detections from one run paired with a signature from another.
    """

    def __init__(
        self,
        settings: Optional[DetectionSettings] = None,
        max_workers: int = PROCESSING_CONFIG["max_workers"]
    ):
        self.settings = (settings or DetectionSettings()).validate()
        self.max_workers = max_workers
        self._session = PredictionSession()
        self._lock = threading.Lock()

    @property
    def session(self) -> PredictionSession:
        with self._lock:
            return self._session

    @property
    def detected_breakdowns(self) -> Mapping[str, Tuple[datetime, ...]]:
        return self.session.breakdowns

    @property
    def favorable_conditions(self) -> Optional[SlopeSignature]:
        return self.session.favorable

    def detect_breakdowns_for_datasets(self, datasets: Datasets) -> Mapping[str, Tuple[datetime, ...]]:
        session = detect_all(datasets, self.settings, max_workers=self.max_workers)
        with self._lock:
            self._session = session
        return session.breakdowns

    def analyze_favorable_conditions(self, datasets: Datasets) -> SlopeSignature:
        with self._lock:
            session = learn_favorable_conditions(self._session, datasets)
            self._session = session
        return session.favorable

    def apply_conditions_to_new_dataset(self, data: Dataset) -> PredictionResult:
        return apply_to_new_dataset(self.session, data)
