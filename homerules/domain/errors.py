from __future__ import annotations
from typing import Optional

from .models import RollbackOutcome


class RuleEngineError(Exception):
    """Base class for rule engine failures."""


class ParseError(RuleEngineError, ValueError):
    def __init__(self, message: str, text: str = "") -> None:
        super().__init__(message)
        self.text = text


class UnknownMetric(ParseError):
    pass


class UnknownDeviceType(ParseError):
    pass


class DeviceNotFound(RuleEngineError, LookupError):
    def __init__(self, location: str, device_type: str) -> None:
        super().__init__(f"No {device_type} device mapped in '{location}'")
        self.location = location
        self.device_type = device_type


class RuleNotFound(RuleEngineError, KeyError):
    def __init__(self, rule_id: str) -> None:
        super().__init__(rule_id)
        self.rule_id = rule_id

    def __str__(self) -> str:
        return f"Rule {self.rule_id} not found"


class ExternalCallError(RuleEngineError):
    def __init__(
        self,
        message: str,
        device_id: str,
        status_code: Optional[int] = None,
        rollback: Optional[RollbackOutcome] = None,
    ) -> None:
        super().__init__(message)
        self.device_id = device_id
        self.status_code = status_code
        self.rollback = rollback

    def to_dict(self) -> dict:
        rb = self.rollback
        return {
            "error": str(self),
            "device_id": self.device_id,
            "status_code": self.status_code,
            "rollback": None if rb is None else {
                "attempted": rb.attempted,
                "success": rb.success,
                "state": rb.state.as_payload() if rb.state else None,
                "error": rb.error,
            },
        }


class RollbackError(RuleEngineError):
    def __init__(self, message: str, device_id: str) -> None:
        super().__init__(message)
        self.device_id = device_id
