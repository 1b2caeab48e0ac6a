from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Mapping, Protocol


class EventType(Enum):
    BLOCK_PLACE = auto()
    SINGLE_LINE = auto()
    DOUBLE_LINE = auto()
    TRIPLE_LINE = auto()
    QUAD_LINE = auto()
    PERFECT_CLEAR = auto()
    COMBO_ACHIEVED = auto()
    ACHIEVEMENT_UNLOCKED = auto()
    POWER_UP_USED = auto()
    GAME_OVER = auto()


EVENT_TAGS: Dict[EventType, str] = {
    EventType.BLOCK_PLACE: "blockPlace",
    EventType.SINGLE_LINE: "singleLine",
    EventType.DOUBLE_LINE: "doubleLine",
    EventType.TRIPLE_LINE: "tripleLine",
    EventType.QUAD_LINE: "quadLine",
    EventType.PERFECT_CLEAR: "perfectClear",
    EventType.COMBO_ACHIEVED: "comboAchieved",
    EventType.ACHIEVEMENT_UNLOCKED: "achievementUnlocked",
    EventType.POWER_UP_USED: "powerUpUsed",
    EventType.GAME_OVER: "gameOver",
}

_LINE_EVENTS = (EventType.SINGLE_LINE, EventType.DOUBLE_LINE, EventType.TRIPLE_LINE, EventType.QUAD_LINE)


@dataclass(frozen=True)
class GameEvent:
    type: EventType
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def tag(self) -> str:
        return EVENT_TAGS[self.type]

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.tag, **self.payload}


def line_clear_event(lines: int) -> GameEvent:
    """``singleLine``..``quadLine``; four or more lines all map to ``quadLine``."""
    kind = _LINE_EVENTS[min(lines, len(_LINE_EVENTS)) - 1]
    return GameEvent(kind, {"lines": lines})


class EventSink(Protocol):
    """Audio/analytics collaborator fed after each successful transition."""

    def publish(self, event: GameEvent) -> None: ...


class SessionStore(Protocol):
    """Persistence collaborator; receives the structured snapshot dict."""

    def save(self, snapshot: Dict[str, Any]) -> None: ...


class RecordingSink:
    """Keeps published events in memory (tests and headless runs)."""

    def __init__(self) -> None:
        self.events: list[GameEvent] = []

    def publish(self, event: GameEvent) -> None:
        self.events.append(event)

    @property
    def tags(self) -> list[str]:
        return [e.tag for e in self.events]

    def clear(self) -> None:
        self.events.clear()
