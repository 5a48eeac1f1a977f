"""
Domain models — Pydantic types for formulae and installs.

All models are re-exported here for convenient access:

    from formulary.core.models import Formula, InstallStep, InstallResult
"""

from formulary.core.models.formula import (
    DestinationCategory,
    Formula,
    InstallStep,
    class_name_for,
    name_for_class,
)
from formulary.core.models.receipt import InstallPhase, InstallReceipt, InstallResult

__all__ = [
    # formula.py
    "DestinationCategory",
    "Formula",
    # receipt.py
    "InstallPhase",
    "InstallReceipt",
    "InstallResult",
    "InstallStep",
    "class_name_for",
    "name_for_class",
]
