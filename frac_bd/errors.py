"""
Error types raised by the breakdown analysis core.

Computational degeneracies are never raised; only usage-order and input
violations reach the caller.
"""

from typing import Any, Dict, Optional


class FracBDError(Exception):
    """Base exception with structured context"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for reporting"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class NotAnalyzedError(FracBDError):
    """Favorable conditions requested before any detection ran"""


class SignatureNotLearnedError(FracBDError):
    """Prediction requested before a favorable signature was learned"""


class InvalidInputError(FracBDError, ValueError):
    """Input cannot be evaluated (e.g. empty timestamp set)"""
