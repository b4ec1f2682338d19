"""Response and artifact schemas parsed by the composite commands."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

BACKUP_RULE_SOURCES = "local,learned,external,user-rules"


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Violation(_Lenient):
    path: str = ""
    message: str = ""


class ContractValidation(_Lenient):
    valid: bool
    violations: List[Violation] = Field(default_factory=list)

    @field_validator("violations", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        # The server encodes empty violation lists as null.
        return [] if value is None else value


class ContractTestResult(_Lenient):
    valid: bool
    endpoint: str = ""
    status_code: int = 0
    error: Optional[str] = None
    request_violations: List[Violation] = Field(default_factory=list)
    response_violations: List[Violation] = Field(default_factory=list)

    @field_validator("request_violations", "response_violations", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ContractDocument(_Lenient):
    kind: Optional[str] = None
    endpoints: Dict[str, Any]


class StateItem(_Lenient):
    key: str


class RulesImportResult(_Lenient):
    imported: int = 0


class EventRecord(_Lenient):
    id: StrictInt


class BackupArtifact(_Lenient):
    state: Dict[str, Any] = Field(default_factory=dict)
    rules: List[Any] = Field(default_factory=list)

    @field_validator("state", mode="before")
    @classmethod
    def null_state_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("rules", mode="before")
    @classmethod
    def null_rules_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


__all__ = [
    "BACKUP_RULE_SOURCES",
    "BackupArtifact",
    "ContractDocument",
    "ContractTestResult",
    "ContractValidation",
    "EventRecord",
    "RulesImportResult",
    "StateItem",
    "Violation",
]
