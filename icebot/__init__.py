"""ICE R6S Discord bot."""

from .status import extract_status, resolve_product_id
from .verification import Outcome, OutcomeKind, VerificationWorkflow

__all__ = [
    "Outcome",
    "OutcomeKind",
    "VerificationWorkflow",
    "extract_status",
    "resolve_product_id",
]

__version__ = "1.0.0"
