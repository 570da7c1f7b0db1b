"""Typed payloads describing assistant proposals and detected file changes."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class StructuredModel(BaseModel):
    """Immutable Pydantic base for parsed assistant payloads.

    Keys the assistant adds beyond the declared fields are dropped.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)


class ChangeEntry(StructuredModel):
    """Replace lines ``start_line``..``end_line`` (1-indexed, inclusive) of ``filepath``."""

    filepath: str = Field(min_length=1)
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    new_content: str
    explanation: Optional[str] = None

    @field_validator("start_line", "end_line", mode="before")
    @classmethod
    def _whole_number(cls, value: Any) -> Any:
        # JSON numbers only; 3.0 is accepted as 3, fractions fail the int check.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("line numbers must be JSON numbers")
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    @field_validator("end_line")
    @classmethod
    def _check_range(cls, value: int, info: ValidationInfo) -> int:
        start_line = info.data.get("start_line")
        if start_line is not None and value < start_line:
            raise ValueError("end_line must be >= start_line")
        return value

    @property
    def deletes(self) -> bool:
        """Return ``True`` when the entry removes its range without replacement."""

        return self.new_content == ""


class Proposal(StructuredModel):
    """A fully validated change-set; never partially valid."""

    changes: Tuple[ChangeEntry, ...] = Field(min_length=1)
    summary: Optional[str] = None

    @field_validator("changes", mode="before")
    @classmethod
    def _require_array(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise ValueError("changes must be an array")
        return value

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json", exclude_none=True)
        payload["changes"] = list(payload["changes"])
        return payload

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_payload(), indent=indent, ensure_ascii=False)


class ChangeStatus(str, Enum):
    """Classification of a file after an assistant run."""

    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class ChangeRecord:
    """Difference between the snapshot and the current disk state for one file."""

    filepath: Path
    status: ChangeStatus
    old: str | None = None
    new: str | None = None


__all__ = [
    "ChangeEntry",
    "ChangeRecord",
    "ChangeStatus",
    "Proposal",
    "StructuredModel",
]
