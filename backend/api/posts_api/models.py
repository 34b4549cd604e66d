from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

@dataclass(frozen=True)
class ContentPost:
    id: str
    content: str
    content_type: str
    status: str
    created_at: datetime
    updated_at: datetime
    title: Optional[str] = None
    source_data: dict[str, Any] = field(default_factory=dict)
    original_content: Optional[str] = None
    edit_history: list[dict[str, Any]] = field(default_factory=list)
    scheduled_date: Optional[datetime] = None
    platform: Optional[str] = None
    tags: Optional[list[str]] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ContentPost":
        return cls(**{k: v for k, v in row.items() if k in cls.__dataclass_fields__})

@dataclass(frozen=True)
class EditRecord:
    content: str
    edited_at: str
    note: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {"content": self.content, "edited_at": self.edited_at, "note": self.note}
