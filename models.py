"""Shared records passed between the guided loop and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

# Response statuses
PASS = "pass"
FAIL = "fail"
SKIPPED = "skipped"
NEEDS_ATTENTION = "needs_attention"
NA = "na"
RESPONSE_STATUSES = (PASS, FAIL, SKIPPED, NEEDS_ATTENTION, NA)

# Loop states
IDLE = "idle"
SPEAKING = "speaking"
LISTENING = "listening"
PROCESSING = "processing"


@dataclass
class Item:
    """One checklist task, audit question or inventory line."""

    id: str
    text: str
    critical: bool = False
    size_ml: Optional[float] = None
    par_level: Optional[float] = None
    category: Optional[str] = None


@dataclass
class Session:
    id: str
    items: list[Item]
    kind: str = "audit"  # "audit" | "inventory"
    position: int = 0

    @property
    def current_item(self) -> Optional[Item]:
        if 0 <= self.position < len(self.items):
            return self.items[self.position]
        return None

    @property
    def finished(self) -> bool:
        return self.position >= len(self.items)


@dataclass
class Response:
    session_id: str
    item_id: str
    status: str
    notes: Optional[str] = None
    transcript: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class VoiceCommand:
    text: str
    action: str
    value: Optional[float] = None


@dataclass
class ItemDelta:
    """Change proposed for one item by the photo review."""

    quantity: Optional[float] = None
    status: Optional[str] = None
    note: Optional[str] = None


@dataclass
class PhotoUpdates:
    items: dict[str, ItemDelta] = field(default_factory=dict)
    photo_path: Optional[str] = None
    kind: str = "updates"


@dataclass
class PhotoCancelled:
    reason: str = "cancelled"
    kind: str = "cancelled"


PhotoResult = Union[PhotoUpdates, PhotoCancelled]
