"""Worker-side rehydration: units, copy engine and orchestration."""

from rehydration.rehydrator.engine import CopyEngine
from rehydration.rehydrator.orchestrator import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    RehydrationOrchestrator,
)
from rehydration.rehydrator.processor import CopyProcessor
from rehydration.rehydrator.units import (
    DestinationObject,
    FileResult,
    RehydrationResult,
    RehydrationUnit,
    SourceObject,
)

__all__ = [
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "CopyEngine",
    "CopyProcessor",
    "DestinationObject",
    "FileResult",
    "RehydrationOrchestrator",
    "RehydrationResult",
    "RehydrationUnit",
    "SourceObject",
]
