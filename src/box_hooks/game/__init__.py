"""Rules engine for the Box Hooks block-placement puzzle.

Exports the session controller and supporting classes:
- Grid: N x N occupancy matrix with pure copy-on-write mutation
- BlockShape / ShapeCatalog / BlockGenerator: piece shapes and weighted draws
- can_place / clear_lines: placement legality and simultaneous line clears
- ScoringRules / ScoringEngine: score tables, combo and streak bonuses
- PowerUpRules / PowerUpController: undo, hint, shuffle and bomb
- Achievement / evaluate / evaluate_all: achievement progress
- GameSessionController: the orchestrator callers talk to
"""

from .errors import ErrorKind, GameError
from .grid import Grid
from .pieces import BASE_SHAPES, DEFAULT_CATALOG, ActiveBlock, BlockGenerator, BlockShape, ShapeCatalog
from .placement import can_place, first_legal_origin, has_any_legal_placement, legal_origins
from .clearing import ClearResult, clear_lines, scan_full_lines
from .rules import ScoreDelta, ScoringEngine, ScoringRules, ScoringState
from .session import Difficulty, GameSession, GameStatus, PlayerStats, PowerUpType
from .events import EventSink, EventType, GameEvent, RecordingSink, SessionStore
from .powerups import Hint, PowerUpController, PowerUpRules
from .achievements import (
    DEFAULT_ACHIEVEMENTS,
    Achievement,
    AchievementCategory,
    AchievementCheckResult,
    AchievementRarity,
    GameDataSnapshot,
    claim,
    evaluate,
    evaluate_all,
)
from .serialization import SCHEMA_VERSION, dumps, loads, session_from_dict, session_to_dict
from .core import ActionResult, GameConfig, GameSessionController

__all__ = [
    "ErrorKind",
    "GameError",
    "Grid",
    "BASE_SHAPES",
    "DEFAULT_CATALOG",
    "ActiveBlock",
    "BlockGenerator",
    "BlockShape",
    "ShapeCatalog",
    "can_place",
    "first_legal_origin",
    "has_any_legal_placement",
    "legal_origins",
    "ClearResult",
    "clear_lines",
    "scan_full_lines",
    "ScoreDelta",
    "ScoringEngine",
    "ScoringRules",
    "ScoringState",
    "Difficulty",
    "GameSession",
    "GameStatus",
    "PlayerStats",
    "PowerUpType",
    "EventSink",
    "EventType",
    "GameEvent",
    "RecordingSink",
    "SessionStore",
    "Hint",
    "PowerUpController",
    "PowerUpRules",
    "DEFAULT_ACHIEVEMENTS",
    "Achievement",
    "AchievementCategory",
    "AchievementCheckResult",
    "AchievementRarity",
    "GameDataSnapshot",
    "claim",
    "evaluate",
    "evaluate_all",
    "SCHEMA_VERSION",
    "dumps",
    "loads",
    "session_from_dict",
    "session_to_dict",
    "ActionResult",
    "GameConfig",
    "GameSessionController",
]
