from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .clearing import ClearResult


LINE_SCORE_KEYS: Tuple[str, ...] = ("singleLine", "doubleLine", "tripleLine", "quadLine")


def _default_base_scores() -> Dict[str, int]:
    return {
        "blockPlace": 10,
        "singleLine": 100,
        "doubleLine": 250,
        "tripleLine": 400,
        "quadLine": 600,
        "perfectClear": 1000,
    }


def _default_streak_bonuses() -> Dict[int, int]:
    return {3: 50, 5: 120, 7: 200, 10: 300, 15: 500}


@dataclass(frozen=True)
class ScoringRules:
    """Static scoring tables."""

    base_scores: Mapping[str, int] = field(default_factory=_default_base_scores)
    extra_line_score: int = 200
    combo_multipliers: Tuple[float, ...] = (1.0, 1.2, 1.5, 1.8, 2.2, 2.7, 3.3, 4.0)
    combo_base_score: int = 50
    streak_bonuses: Mapping[int, int] = field(default_factory=_default_streak_bonuses)
    lines_per_level: int = 10

    def __post_init__(self) -> None:
        missing = {"blockPlace", "perfectClear", *LINE_SCORE_KEYS} - set(self.base_scores)
        if missing:
            raise ValueError(f"base_scores missing keys: {sorted(missing)}")
        curve = tuple(float(m) for m in self.combo_multipliers)
        if not curve:
            raise ValueError("combo_multipliers cannot be empty")
        if any(b < a for a, b in zip(curve, curve[1:])):
            raise ValueError("combo_multipliers must be non-decreasing")
        if self.lines_per_level <= 0:
            raise ValueError("lines_per_level must be positive")
        object.__setattr__(self, "combo_multipliers", curve)
        object.__setattr__(self, "base_scores", dict(self.base_scores))
        object.__setattr__(self, "streak_bonuses", {int(k): int(v) for k, v in self.streak_bonuses.items()})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScoringRules":
        kwargs: Dict[str, Any] = {}
        if "baseScores" in data:
            kwargs["base_scores"] = {**_default_base_scores(), **data["baseScores"]}
        if "extraLineScore" in data:
            kwargs["extra_line_score"] = int(data["extraLineScore"])
        if "comboMultipliers" in data:
            kwargs["combo_multipliers"] = tuple(data["comboMultipliers"])
        if "comboBaseScore" in data:
            kwargs["combo_base_score"] = int(data["comboBaseScore"])
        if "streakBonuses" in data:
            kwargs["streak_bonuses"] = data["streakBonuses"]
        if "linesPerLevel" in data:
            kwargs["lines_per_level"] = int(data["linesPerLevel"])
        return cls(**kwargs)

    @property
    def block_place_score(self) -> int:
        return int(self.base_scores["blockPlace"])

    @property
    def perfect_clear_score(self) -> int:
        return int(self.base_scores["perfectClear"])

    def line_bonus(self, lines: int) -> int:
        if lines <= 0:
            return 0
        if lines <= len(LINE_SCORE_KEYS):
            return int(self.base_scores[LINE_SCORE_KEYS[lines - 1]])
        return int(self.base_scores["quadLine"]) + (lines - 4) * self.extra_line_score

    def combo_multiplier(self, combo: int) -> float:
        if combo <= 0:
            return 0.0
        return self.combo_multipliers[min(combo, len(self.combo_multipliers)) - 1]

    def combo_bonus(self, combo: int) -> int:
        return int(round(self.combo_base_score * self.combo_multiplier(combo)))

    def streak_bonus(self, streak: int) -> int:
        """Bonus of the highest threshold reached, paid only on the step that reaches it."""
        reached = [t for t in self.streak_bonuses if t <= streak]
        if not reached:
            return 0
        top = max(reached)
        return self.streak_bonuses[top] if top == streak else 0

    def level_for_lines(self, lines_cleared: int) -> int:
        return lines_cleared // self.lines_per_level + 1


@dataclass(frozen=True)
class ScoringState:
    combo_count: int = 0
    max_combo: int = 0
    streak_count: int = 0
    max_streak: int = 0


@dataclass(frozen=True)
class ScoreDelta:
    placement: int = 0
    line_bonus: int = 0
    combo_bonus: int = 0
    streak_bonus: int = 0
    perfect_clear_bonus: int = 0
    lines: int = 0
    state: ScoringState = field(default_factory=ScoringState)

    @property
    def total(self) -> int:
        return self.placement + self.line_bonus + self.combo_bonus + self.streak_bonus + self.perfect_clear_bonus

    @property
    def is_perfect_clear(self) -> bool:
        return self.perfect_clear_bonus > 0

    def breakdown(self) -> Dict[str, int]:
        return {
            "placement": self.placement,
            "lineBonus": self.line_bonus,
            "comboBonus": self.combo_bonus,
            "streakBonus": self.streak_bonus,
            "perfectClearBonus": self.perfect_clear_bonus,
            "total": self.total,
        }


class ScoringEngine:
    """Turns placement and clear results into score deltas."""

    def __init__(self, rules: Optional[ScoringRules] = None) -> None:
        self.rules = rules or ScoringRules()

    def compute_delta(self, state: ScoringState, clear: ClearResult, grid_empty_after: bool) -> ScoreDelta:
        rules = self.rules
        lines = clear.total_lines
        if lines == 0:
            return ScoreDelta(
                placement=rules.block_place_score,
                state=ScoringState(
                    combo_count=0,
                    max_combo=state.max_combo,
                    streak_count=state.streak_count,
                    max_streak=state.max_streak,
                ),
            )

        combo_bonus = rules.combo_bonus(state.combo_count)
        combo = state.combo_count + 1
        streak = state.streak_count + 1
        return ScoreDelta(
            placement=rules.block_place_score,
            line_bonus=rules.line_bonus(lines),
            combo_bonus=combo_bonus,
            streak_bonus=rules.streak_bonus(streak),
            perfect_clear_bonus=rules.perfect_clear_score if grid_empty_after else 0,
            lines=lines,
            state=ScoringState(
                combo_count=combo,
                max_combo=max(state.max_combo, combo),
                streak_count=streak,
                max_streak=max(state.max_streak, streak),
            ),
        )

    def next_level(self, current_level: int, lines_cleared: int) -> int:
        return max(current_level, self.rules.level_for_lines(lines_cleared))
