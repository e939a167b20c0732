"""
Fracturing Breakdown Detection

Detects formation breakdown in hydraulic-fracturing telemetry with a
permeability estimate, learns the slope signature that precedes breakdowns,
and predicts breakdowns on new stages by matching that signature.
"""

__version__ = "1.0.0"

from .config import DetectionSettings
from .detection import BreakdownDetector, detect_breakdowns
from .errors import FracBDError, InvalidInputError, NotAnalyzedError, SignatureNotLearnedError
from .metrics import hausdorff_distance
from .prediction import (
    FracturePredictionModule,
    PredictionResult,
    PredictionSession,
    apply_to_new_dataset,
    detect_all,
    learn_favorable_conditions,
)
from .records import Dataset, Reading
from .signatures import (
    SignatureAnalyzer,
    SlopeSignature,
    average_across_datasets,
    is_similar,
    slopes_in_window,
    window_before_events,
)

__all__ = [
    "BreakdownDetector",
    "Dataset",
    "DetectionSettings",
    "FracBDError",
    "FracturePredictionModule",
    "InvalidInputError",
    "NotAnalyzedError",
    "PredictionResult",
    "PredictionSession",
    "Reading",
    "SignatureAnalyzer",
    "SignatureNotLearnedError",
    "SlopeSignature",
    "apply_to_new_dataset",
    "average_across_datasets",
    "detect_all",
    "detect_breakdowns",
    "hausdorff_distance",
    "is_similar",
    "learn_favorable_conditions",
    "slopes_in_window",
    "window_before_events",
]
