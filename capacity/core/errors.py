"""Domain error taxonomy raised by capacity services."""

from __future__ import annotations

from fastapi import status

VERSION_CONFLICT_MESSAGE = (
    "Version conflict: the record was modified by another user. Please refresh and try again."
)


class CapacityError(Exception):
    """Base class for errors surfaced by the scheduling core."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, object]:
        return {"detail": self.detail}


class ValidationError(CapacityError):
    """Malformed input rejected before any mutation."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(CapacityError):
    status_code = status.HTTP_404_NOT_FOUND


class DuplicateAssignmentError(CapacityError):
    status_code = status.HTTP_409_CONFLICT


class OverallocationError(CapacityError):
    """Proposed allocation would push a team member above the capacity cap."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, *, current_allocation: int, proposed_allocation: int, warning: str) -> None:
        super().__init__(warning)
        self.current_allocation = current_allocation
        self.proposed_allocation = proposed_allocation
        self.warning = warning

    def to_payload(self) -> dict[str, object]:
        return {
            "detail": self.detail,
            "current_allocation": self.current_allocation,
            "proposed_allocation": self.proposed_allocation,
            "warning": self.warning,
        }


class VersionConflictError(CapacityError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = VERSION_CONFLICT_MESSAGE) -> None:
        super().__init__(detail)


class StoreError(CapacityError):
    """Unexpected persistence failure; the session has been rolled back."""
