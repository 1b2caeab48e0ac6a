"""
Session data model.

A ``GameSession`` is a frozen value. The controller derives every new state
with ``dataclasses.replace`` and keeps the previous value as the single undo
snapshot, so no two sessions share mutable data.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Mapping, Optional, Tuple

from .errors import invariant_violation
from .grid import Grid
from .pieces import ActiveBlock
from .rules import ScoringRules, ScoringState


class GameStatus(Enum):
    INITIAL = auto()
    PLAYING = auto()
    PAUSED = auto()
    GAME_OVER = auto()
    ERROR = auto()


TERMINAL_STATUSES = frozenset({GameStatus.GAME_OVER, GameStatus.ERROR})


class Difficulty(Enum):
    EASY = auto()
    NORMAL = auto()
    HARD = auto()
    EXPERT = auto()


class PowerUpType(Enum):
    UNDO = auto()
    HINT = auto()
    SHUFFLE = auto()
    BOMB = auto()


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class GameSession:
    grid: Grid
    block_queue: Tuple[ActiveBlock, ...] = ()
    status: GameStatus = GameStatus.INITIAL
    session_id: str = field(default_factory=new_session_id)
    score: int = 0
    level: int = 1
    lines_cleared: int = 0
    combo_count: int = 0
    max_combo: int = 0
    streak_count: int = 0
    max_streak: int = 0
    blocks_placed: int = 0
    perfect_clears: int = 0
    remaining_undos: int = 3
    inventory: Mapping[PowerUpType, int] = field(default_factory=dict)
    used_power_ups: Mapping[PowerUpType, int] = field(default_factory=dict)
    cooldowns: Mapping[PowerUpType, float] = field(default_factory=dict)
    difficulty: Difficulty = Difficulty.NORMAL
    mode: str = "classic"
    play_seconds: float = 0.0
    next_block_serial: int = 0
    last_snapshot_for_undo: Optional["GameSession"] = field(default=None, compare=False, repr=False)

    @property
    def is_playing(self) -> bool:
        return self.status is GameStatus.PLAYING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_undo(self) -> bool:
        return self.last_snapshot_for_undo is not None and self.remaining_undos > 0

    @property
    def used_undo(self) -> bool:
        return self.used_power_ups.get(PowerUpType.UNDO, 0) > 0

    @property
    def scoring_state(self) -> ScoringState:
        return ScoringState(
            combo_count=self.combo_count,
            max_combo=self.max_combo,
            streak_count=self.streak_count,
            max_streak=self.max_streak,
        )

    def fill_percentage(self) -> float:
        return self.grid.fill_percentage()

    def find_block(self, block_id: str) -> Optional[ActiveBlock]:
        for block in self.block_queue:
            if block.id == block_id:
                return block
        return None

    def power_up_count(self, kind: PowerUpType) -> int:
        if kind is PowerUpType.UNDO:
            return self.remaining_undos
        return int(self.inventory.get(kind, 0))

    def lines_to_next_level(self, lines_per_level: int) -> int:
        return self.level * lines_per_level - self.lines_cleared

    def detached(self) -> "GameSession":
        """Copy without the undo snapshot (keeps history one level deep)."""
        if self.last_snapshot_for_undo is None:
            return self
        return replace(self, last_snapshot_for_undo=None)


@dataclass(frozen=True)
class PlayerStats:
    """Profile aggregates, folded in when a session ends."""

    games_played: int = 0
    best_score: int = 0
    best_combo: int = 0
    best_level: int = 1
    total_blocks_placed: int = 0
    total_lines_cleared: int = 0
    longest_session_seconds: float = 0.0
    perfect_clears: int = 0

    def fold(self, session: GameSession) -> "PlayerStats":
        return PlayerStats(
            games_played=self.games_played + 1,
            best_score=max(self.best_score, session.score),
            best_combo=max(self.best_combo, session.max_combo),
            best_level=max(self.best_level, session.level),
            total_blocks_placed=self.total_blocks_placed + session.blocks_placed,
            total_lines_cleared=self.total_lines_cleared + session.lines_cleared,
            longest_session_seconds=max(self.longest_session_seconds, session.play_seconds),
            perfect_clears=self.perfect_clears + session.perfect_clears,
        )


def check_invariants(session: GameSession, rules: ScoringRules, max_active_blocks: Optional[int] = None) -> None:
    """Raise ``GameError(INVARIANT_VIOLATION)`` if ``session`` is inconsistent."""
    if session.score < 0:
        raise invariant_violation("score is negative", score=session.score)
    if session.remaining_undos < 0:
        raise invariant_violation("remaining undos is negative", remaining_undos=session.remaining_undos)
    for kind, count in session.inventory.items():
        if count < 0:
            raise invariant_violation("power-up inventory is negative", power_up=kind.name, count=count)
    if session.lines_cleared < 0 or session.combo_count < 0 or session.streak_count < 0:
        raise invariant_violation("negative counter")
    if session.combo_count > session.max_combo:
        raise invariant_violation("combo exceeds max combo", combo=session.combo_count, max_combo=session.max_combo)
    expected_level = rules.level_for_lines(session.lines_cleared)
    if session.level != expected_level:
        raise invariant_violation("level does not match lines cleared", level=session.level, expected=expected_level)
    if max_active_blocks is not None and len(session.block_queue) > max_active_blocks:
        raise invariant_violation("block queue too long", length=len(session.block_queue))
    ids = [b.id for b in session.block_queue]
    if len(set(ids)) != len(ids):
        raise invariant_violation("duplicate block ids in queue", ids=ids)
