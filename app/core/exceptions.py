from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_http(self) -> HTTPException:
        """HTTPException carrying the message, plus structured details when present."""
        if not self.details:
            return HTTPException(status_code=self.status_code, detail=self.message)
        return HTTPException(status_code=self.status_code, detail={"message": self.message, **self.details})


class SlotConflictError(ServiceError):
    """Slot write hit one or more conflicts; caller may resubmit with override_warnings=true."""

    def __init__(self, conflicts: List[Dict[str, Any]]) -> None:
        super().__init__(
            "Conflicts detected",
            status.HTTP_409_CONFLICT,
            details={"requires_confirmation": True, "conflicts": conflicts},
        )
        self.conflicts = conflicts


class ExamSlotError(ServiceError):
    """Exam slot rejected by the duplicate-subject or same-day overlap rule."""

    def __init__(self, code: str, message: str, details: Dict[str, Any]) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, details={"code": code, "details": details})
        self.code = code
