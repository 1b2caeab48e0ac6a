"""
Achievement progress evaluation.

Every achievement id maps to an extractor over a ``GameDataSnapshot``; the
evaluator clamps the extracted value to ``[0, target_value]``, never lets
progress regress, and records the unlock timestamp exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import invalid_action
from .session import GameSession, PlayerStats


logger = logging.getLogger(__name__)


class AchievementCategory(Enum):
    BEGINNER = auto()
    SCORING = auto()
    COMBO = auto()
    SURVIVAL = auto()
    MASTERY = auto()
    SPECIAL = auto()


class AchievementRarity(Enum):
    COMMON = auto()
    RARE = auto()
    EPIC = auto()
    LEGENDARY = auto()


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    category: AchievementCategory
    target_value: int
    rarity: AchievementRarity = AchievementRarity.COMMON
    description: str = ""
    coin_reward: int = 0
    power_up_rewards: Mapping[str, int] = field(default_factory=dict)
    is_secret: bool = False
    repeatable: bool = False
    current_progress: int = 0
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    times_claimed: int = 0
    # Repeatable progress counts from the extracted value at the last claim
    progress_baseline: int = 0

    def __post_init__(self) -> None:
        if self.target_value <= 0:
            raise ValueError(f"Achievement {self.id!r} needs a positive target")
        if not 0 <= self.current_progress <= self.target_value:
            raise ValueError(f"Achievement {self.id!r} progress out of range")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Achievement":
        """Definition from a static table entry (camelCase keys, enum names as strings)."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            category=AchievementCategory[str(data.get("category", "special")).upper()],
            target_value=int(data["targetValue"]),
            rarity=AchievementRarity[str(data.get("rarity", "common")).upper()],
            description=str(data.get("description", "")),
            coin_reward=int(data.get("coinReward", 0)),
            power_up_rewards={str(k): int(v) for k, v in data.get("powerUpRewards", {}).items()},
            is_secret=bool(data.get("isSecret", False)),
            repeatable=bool(data.get("repeatable", False)),
        )

    @property
    def progress_percentage(self) -> float:
        return 100.0 * self.current_progress / self.target_value

    @property
    def remaining_progress(self) -> int:
        return self.target_value - self.current_progress

    @property
    def display_name(self) -> str:
        return "???" if self.is_secret and not self.is_unlocked else self.name


@dataclass(frozen=True)
class GameDataSnapshot:
    """Gameplay figures the extractors read from."""

    blocks_placed: int = 0
    lines_cleared: int = 0
    current_score: int = 0
    best_score: int = 0
    best_combo: int = 0
    best_level: int = 1
    games_played: int = 0
    total_blocks_placed: int = 0
    total_lines_cleared: int = 0
    longest_session_seconds: float = 0.0
    had_perfect_clear: bool = False
    used_undo: bool = False
    game_over: bool = False

    @classmethod
    def from_session(cls, session: GameSession, stats: Optional[PlayerStats] = None,
                     game_over: bool = False) -> "GameDataSnapshot":
        """Combine the live session with profile totals from finished games."""
        stats = stats or PlayerStats()
        return cls(
            blocks_placed=session.blocks_placed,
            lines_cleared=session.lines_cleared,
            current_score=session.score,
            best_score=max(stats.best_score, session.score),
            best_combo=max(stats.best_combo, session.max_combo),
            best_level=max(stats.best_level, session.level),
            games_played=stats.games_played + (1 if game_over else 0),
            total_blocks_placed=stats.total_blocks_placed + session.blocks_placed,
            total_lines_cleared=stats.total_lines_cleared + session.lines_cleared,
            longest_session_seconds=max(stats.longest_session_seconds, session.play_seconds),
            had_perfect_clear=session.perfect_clears > 0 or stats.perfect_clears > 0,
            used_undo=session.used_undo,
            game_over=game_over,
        )


ProgressExtractor = Callable[[GameDataSnapshot], int]


def _no_undo_game(data: GameDataSnapshot) -> int:
    return int(not data.used_undo and data.current_score > 500)


PROGRESS_EXTRACTORS: Dict[str, ProgressExtractor] = {
    "first_block": lambda d: d.blocks_placed,
    "first_line": lambda d: d.lines_cleared,
    "play_10_games": lambda d: d.games_played,
    "score_1000": lambda d: d.best_score,
    "score_5000": lambda d: d.best_score,
    "score_10000": lambda d: d.best_score,
    "combo_3x": lambda d: d.best_combo,
    "combo_5x": lambda d: d.best_combo,
    "perfect_clear": lambda d: int(d.had_perfect_clear),
    "survive_5min": lambda d: int(d.longest_session_seconds),
    "no_undo_game": _no_undo_game,
    "place_100_blocks": lambda d: d.total_blocks_placed,
    "clear_50_lines": lambda d: d.total_lines_cleared,
    "reach_level_10": lambda d: d.best_level,
    "lucky_777": lambda d: int(d.current_score == 777),
    "line_hunter": lambda d: d.total_lines_cleared,
}


def _a(id_: str, name: str, category: AchievementCategory, target: int, rarity: AchievementRarity,
       description: str, coins: int, **extra) -> Achievement:
    return Achievement(id=id_, name=name, category=category, target_value=target, rarity=rarity,
                       description=description, coin_reward=coins, **extra)


_C = AchievementCategory
_R = AchievementRarity

DEFAULT_ACHIEVEMENTS: Tuple[Achievement, ...] = (
    _a("first_block", "First Steps", _C.BEGINNER, 1, _R.COMMON, "Place your first block", 10),
    _a("first_line", "Line Breaker", _C.BEGINNER, 1, _R.COMMON, "Clear your first line", 20),
    _a("play_10_games", "Regular", _C.BEGINNER, 10, _R.COMMON, "Finish 10 games", 50),
    _a("score_1000", "Scorer", _C.SCORING, 1000, _R.COMMON, "Reach 1,000 points", 50),
    _a("score_5000", "High Scorer", _C.SCORING, 5000, _R.RARE, "Reach 5,000 points", 100),
    _a("score_10000", "Score Legend", _C.SCORING, 10000, _R.EPIC, "Reach 10,000 points", 250,
       power_up_rewards={"bomb": 1}),
    _a("combo_3x", "Combo Starter", _C.COMBO, 3, _R.COMMON, "Chain a 3x combo", 30),
    _a("combo_5x", "Combo Master", _C.COMBO, 5, _R.RARE, "Chain a 5x combo", 100,
       power_up_rewards={"shuffle": 1}),
    _a("perfect_clear", "Clean Sweep", _C.MASTERY, 1, _R.EPIC, "Leave the grid empty after a clear", 200),
    _a("survive_5min", "Survivor", _C.SURVIVAL, 300, _R.RARE, "Play a single game for 5 minutes", 75),
    _a("no_undo_game", "No Regrets", _C.MASTERY, 1, _R.RARE, "Score over 500 without undo", 100),
    _a("place_100_blocks", "Builder", _C.MASTERY, 100, _R.COMMON, "Place 100 blocks in total", 50),
    _a("clear_50_lines", "Demolisher", _C.MASTERY, 50, _R.RARE, "Clear 50 lines in total", 100),
    _a("reach_level_10", "Climber", _C.SURVIVAL, 10, _R.EPIC, "Reach level 10", 200),
    _a("lucky_777", "Lucky Sevens", _C.SPECIAL, 1, _R.LEGENDARY, "Finish a move on exactly 777 points", 777,
       is_secret=True),
    _a("line_hunter", "Line Hunter", _C.SPECIAL, 10, _R.COMMON, "Clear 10 more lines (repeatable)", 25,
       repeatable=True, power_up_rewards={"hint": 1}),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def evaluate(achievement: Achievement, data: GameDataSnapshot, now: Optional[datetime] = None,
             extractors: Mapping[str, ProgressExtractor] = PROGRESS_EXTRACTORS) -> Achievement:
    """Return ``achievement`` updated for ``data``.

    Unlocked achievements (repeatable ones included, until claimed) and ids
    without an extractor come back unchanged.
    """
    if achievement.is_unlocked:
        return achievement
    extractor = extractors.get(achievement.id)
    if extractor is None:
        return achievement
    value = int(extractor(data))
    if achievement.repeatable:
        value -= achievement.progress_baseline
    value = min(max(value, 0), achievement.target_value)
    progress = max(achievement.current_progress, value)
    if progress >= achievement.target_value:
        return replace(
            achievement,
            current_progress=achievement.target_value,
            is_unlocked=True,
            unlocked_at=now or _utcnow(),
        )
    if progress == achievement.current_progress:
        return achievement
    return replace(achievement, current_progress=progress)


@dataclass(frozen=True)
class AchievementCheckResult:
    achievements: Tuple[Achievement, ...]
    newly_unlocked: Tuple[Achievement, ...] = ()

    @property
    def has_new_unlocks(self) -> bool:
        return bool(self.newly_unlocked)

    @property
    def total_reward_coins(self) -> int:
        return sum(a.coin_reward for a in self.newly_unlocked)


def evaluate_all(achievements: Iterable[Achievement], data: GameDataSnapshot,
                 now: Optional[datetime] = None) -> AchievementCheckResult:
    now = now or _utcnow()
    updated: List[Achievement] = []
    unlocked: List[Achievement] = []
    for achievement in achievements:
        new = evaluate(achievement, data, now)
        if new.is_unlocked and not achievement.is_unlocked:
            unlocked.append(new)
            logger.info("achievement unlocked: %s", new.id)
        updated.append(new)
    return AchievementCheckResult(tuple(updated), tuple(unlocked))


def claim(achievement: Achievement, data: Optional[GameDataSnapshot] = None,
          extractors: Mapping[str, ProgressExtractor] = PROGRESS_EXTRACTORS) -> Achievement:
    """Reset an unlocked repeatable achievement so it can be earned again.

    Progress restarts from the value extracted from ``data``, so only gains
    made after the claim count towards the next unlock. Without ``data`` the
    baseline moves forward by one target.
    """
    if not achievement.repeatable:
        raise invalid_action(f"Achievement {achievement.id!r} is not repeatable", achievement=achievement.id)
    if not achievement.is_unlocked:
        raise invalid_action(f"Achievement {achievement.id!r} is not unlocked", achievement=achievement.id)
    extractor = extractors.get(achievement.id)
    if data is not None and extractor is not None:
        baseline = int(extractor(data))
    else:
        baseline = achievement.progress_baseline + achievement.target_value
    return replace(
        achievement,
        current_progress=0,
        is_unlocked=False,
        unlocked_at=None,
        times_claimed=achievement.times_claimed + 1,
        progress_baseline=baseline,
    )
