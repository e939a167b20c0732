"""
Agreement metrics between two sets of detected breakdown times.
"""

from datetime import datetime
from typing import Iterable, Tuple

import numpy as np
import pandas as pd
from scipy.spatial.distance import directed_hausdorff

from .errors import InvalidInputError


def _to_seconds(set_a: Iterable[datetime], set_b: Iterable[datetime]) -> Tuple[np.ndarray, np.ndarray]:
    """Both sets as column vectors of seconds since their common earliest time"""
    a = pd.to_datetime(pd.Series(list(set_a), dtype=object))
    b = pd.to_datetime(pd.Series(list(set_b), dtype=object))

    if a.empty or b.empty:
        raise InvalidInputError(
            "Hausdorff distance is undefined for an empty timestamp set",
            context={"size_a": len(a), "size_b": len(b)},
        )

    origin = min(a.min(), b.min())
    a_sec = (a - origin).dt.total_seconds().to_numpy(dtype=float).reshape(-1, 1)
    b_sec = (b - origin).dt.total_seconds().to_numpy(dtype=float).reshape(-1, 1)
    return a_sec, b_sec


def directed_distance(set_a: Iterable[datetime], set_b: Iterable[datetime]) -> float:
    """Largest gap in seconds from a point of A to its nearest point of B"""
    a_sec, b_sec = _to_seconds(set_a, set_b)
    return float(directed_hausdorff(a_sec, b_sec)[0])


def hausdorff_distance(set_a: Iterable[datetime], set_b: Iterable[datetime]) -> float:
    """Symmetric discrete Hausdorff distance in seconds"""
    a_sec, b_sec = _to_seconds(set_a, set_b)
    return float(max(
        directed_hausdorff(a_sec, b_sec)[0],
        directed_hausdorff(b_sec, a_sec)[0],
    ))
