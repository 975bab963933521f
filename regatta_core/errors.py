"""Error kinds raised by the scoring and progression core.

Every error carries a machine-readable ``kind`` plus the HTTP-ish
``status_code`` the parent API should answer with. The core never maps
errors to transport responses itself.
"""
from __future__ import annotations

from typing import Sequence


class RegattaError(Exception):
    """Base class for all core errors."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str | None = None, *, kind: str | None = None):
        super().__init__(message or self.kind)
        self.message = message
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(RegattaError):
    """Malformed or incomplete input (missing category, wrong lane count...)."""

    kind = "validation_error"
    status_code = 400


class NotFound(RegattaError):
    kind = "not_found"
    status_code = 404


class StateConflict(RegattaError):
    """Operation attempted in a state that does not allow it."""

    kind = "state_conflict"
    status_code = 409


class PhaseNotReady(StateConflict):
    """The phase still has races without recorded results."""

    kind = "phase_not_ready"


class AlreadyProcessed(StateConflict):
    """The phase (or race) was already processed; nothing is recomputed."""

    kind = "already_processed"


class NotEligible(RegattaError):
    """An entry fails category, gender or boat-class constraints."""

    kind = "not_eligible"
    status_code = 422

    def __init__(self, entity_id: str, reasons: Sequence[str]):
        self.entity_id = entity_id
        self.reasons = tuple(reasons)
        super().__init__(f"{entity_id}: {', '.join(self.reasons)}")

    def to_dict(self) -> dict:
        return {"kind": self.kind, "entityId": self.entity_id, "reasons": list(self.reasons)}


class DataInconsistency(RegattaError):
    """Stored data contradicts itself; the computation is withheld."""

    kind = "data_inconsistency"
    status_code = 500


__all__ = [
    "RegattaError",
    "ValidationError",
    "NotFound",
    "StateConflict",
    "PhaseNotReady",
    "AlreadyProcessed",
    "NotEligible",
    "DataInconsistency",
]
