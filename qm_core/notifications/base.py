# qm_core/notifications/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Protocol

ROOM_ALL = "all"


class AudienceKind(str, Enum):
    ORGANIZATION = "organization"
    ROLE = "role"
    COUNTER = "counter"
    USER = "user"
    ALL = "all"


_ROOM_PREFIX = {
    AudienceKind.ORGANIZATION: "org",
    AudienceKind.ROLE: "role",
    AudienceKind.COUNTER: "counter",
    AudienceKind.USER: "user",
}


@dataclass(frozen=True)
class Audience:
    """
    Who a broadcast is for. Rendered as a room name subscribers listen on.
    """
    kind: AudienceKind
    key: str = ""

    @classmethod
    def organization(cls, organization_id) -> "Audience":
        return cls(AudienceKind.ORGANIZATION, str(organization_id))

    @classmethod
    def role(cls, role: str) -> "Audience":
        return cls(AudienceKind.ROLE, role)

    @classmethod
    def counter(cls, counter_id) -> "Audience":
        return cls(AudienceKind.COUNTER, str(counter_id))

    @classmethod
    def user(cls, user_id) -> "Audience":
        return cls(AudienceKind.USER, str(user_id))

    @classmethod
    def everyone(cls) -> "Audience":
        return cls(AudienceKind.ALL)

    @property
    def room(self) -> str:
        if self.kind == AudienceKind.ALL:
            return ROOM_ALL
        return f"{_ROOM_PREFIX[self.kind]}:{self.key}"


@dataclass(frozen=True)
class Broadcast:
    room: str
    event: str
    payload: Dict[str, Any]
    sent_at: datetime = field(compare=False)

    def as_message(self) -> Dict[str, Any]:
        return {
            "room": self.room,
            "event": self.event,
            "payload": self.payload,
            "sent_at": self.sent_at.isoformat(),
        }


class Notifier(Protocol):
    """
    Delivers a named event with a JSON-able payload to an audience.
    Callers ignore the outcome; implementations must not block on slow consumers.
    """

    def publish(self, audience: Audience, event: str, payload: Dict[str, Any]) -> None:
        ...
