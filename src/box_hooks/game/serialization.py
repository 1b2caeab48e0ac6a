"""
Versioned snapshot schema.

Sessions and achievements cross the persistence boundary as plain dicts with
camelCase keys. Enum names are mapped through explicit tables here so the
domain types stay free of wire concerns.

Default policy: any optional key that is missing takes the ``GameSession``
default. A missing grid, an unknown shape id, a schema version newer than
``SCHEMA_VERSION``, a malformed value or a broken invariant raises
``GameError(CORRUPT_SNAPSHOT)``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .achievements import Achievement
from .errors import GameError, corrupt_snapshot
from .grid import Grid
from .pieces import ActiveBlock, ShapeCatalog
from .rules import ScoringRules
from .session import Difficulty, GameSession, GameStatus, PowerUpType, check_invariants


logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

STATUS_NAMES: Dict[GameStatus, str] = {
    GameStatus.INITIAL: "initial",
    GameStatus.PLAYING: "playing",
    GameStatus.PAUSED: "paused",
    GameStatus.GAME_OVER: "gameOver",
    GameStatus.ERROR: "error",
}

DIFFICULTY_NAMES: Dict[Difficulty, str] = {
    Difficulty.EASY: "easy",
    Difficulty.NORMAL: "normal",
    Difficulty.HARD: "hard",
    Difficulty.EXPERT: "expert",
}

POWER_UP_NAMES: Dict[PowerUpType, str] = {
    PowerUpType.UNDO: "undo",
    PowerUpType.HINT: "hint",
    PowerUpType.SHUFFLE: "shuffle",
    PowerUpType.BOMB: "bomb",
}


def _reverse(table: Mapping[Any, str]) -> Dict[str, Any]:
    return {v: k for k, v in table.items()}


_STATUS_BY_NAME = _reverse(STATUS_NAMES)
_DIFFICULTY_BY_NAME = _reverse(DIFFICULTY_NAMES)
_POWER_UP_BY_NAME = _reverse(POWER_UP_NAMES)


def _power_up_map(values: Mapping[PowerUpType, Any]) -> Dict[str, Any]:
    return {POWER_UP_NAMES[k]: v for k, v in values.items()}


def session_to_dict(session: GameSession, include_undo: bool = True) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "schemaVersion": SCHEMA_VERSION,
        "sessionId": session.session_id,
        "status": STATUS_NAMES[session.status],
        "difficulty": DIFFICULTY_NAMES[session.difficulty],
        "mode": session.mode,
        "grid": session.grid.to_lists(),
        "blockQueue": [
            {
                "id": b.id,
                "shapeId": b.shape_id,
                "colorIndex": b.color_index,
                "isLocked": b.is_locked,
                "slot": slot,
            }
            for slot, b in enumerate(session.block_queue)
        ],
        "score": session.score,
        "level": session.level,
        "linesCleared": session.lines_cleared,
        "comboCount": session.combo_count,
        "maxCombo": session.max_combo,
        "streakCount": session.streak_count,
        "maxStreak": session.max_streak,
        "blocksPlaced": session.blocks_placed,
        "perfectClears": session.perfect_clears,
        "remainingUndos": session.remaining_undos,
        "inventory": _power_up_map(session.inventory),
        "usedPowerUps": _power_up_map(session.used_power_ups),
        "cooldowns": _power_up_map(session.cooldowns),
        "playSeconds": session.play_seconds,
        "nextBlockSerial": session.next_block_serial,
        "lastSnapshotForUndo": None,
    }
    if include_undo and session.last_snapshot_for_undo is not None:
        data["lastSnapshotForUndo"] = session_to_dict(session.last_snapshot_for_undo, include_undo=False)
    return data


def _int(data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise corrupt_snapshot(f"{key} must be an integer", key=key, value=value)
    return value


def _float(data: Mapping[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise corrupt_snapshot(f"{key} must be a number", key=key, value=value)
    return float(value)


def _enum(data: Mapping[str, Any], key: str, table: Mapping[str, Any], default: Any) -> Any:
    if key not in data:
        return default
    try:
        return table[data[key]]
    except (KeyError, TypeError):
        raise corrupt_snapshot(f"unknown {key} {data[key]!r}", key=key) from None


def _power_up_values(data: Mapping[str, Any], key: str, cast) -> Dict[PowerUpType, Any]:
    raw = data.get(key, {})
    if not isinstance(raw, Mapping):
        raise corrupt_snapshot(f"{key} must be an object", key=key)
    out: Dict[PowerUpType, Any] = {}
    for name, value in raw.items():
        if name not in _POWER_UP_BY_NAME:
            raise corrupt_snapshot(f"unknown power-up {name!r} in {key}", key=key)
        try:
            out[_POWER_UP_BY_NAME[name]] = cast(value)
        except (TypeError, ValueError):
            raise corrupt_snapshot(f"bad value for {name!r} in {key}", key=key) from None
    return out


def _grid(data: Mapping[str, Any]) -> Grid:
    raw = data.get("grid")
    if not isinstance(raw, list) or not raw:
        raise corrupt_snapshot("grid is missing")
    if any(not isinstance(row, list) or len(row) != len(raw) for row in raw):
        raise corrupt_snapshot("grid must be a square matrix")
    if any(not isinstance(cell, (bool, int)) for row in raw for cell in row):
        raise corrupt_snapshot("grid cells must be booleans")
    return Grid.from_lists(raw)


def _queue(data: Mapping[str, Any], catalog: ShapeCatalog) -> Tuple[ActiveBlock, ...]:
    raw = data.get("blockQueue", [])
    if not isinstance(raw, list):
        raise corrupt_snapshot("blockQueue must be a list")
    entries = []
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping) or "id" not in item or "shapeId" not in item:
            raise corrupt_snapshot("malformed block queue entry", index=i)
        if not isinstance(item["id"], str) or not isinstance(item["shapeId"], str):
            raise corrupt_snapshot("block ids and shape ids must be strings", index=i)
        if item["shapeId"] not in catalog:
            raise corrupt_snapshot(f"unknown shape id {item['shapeId']!r}", index=i)
        block = ActiveBlock(
            id=str(item["id"]),
            shape_id=str(item["shapeId"]),
            color_index=_int(item, "colorIndex", 0),
            is_locked=bool(item.get("isLocked", False)),
        )
        entries.append((_int(item, "slot", i), block))
    entries.sort(key=lambda e: e[0])
    return tuple(block for _, block in entries)


def session_from_dict(data: Mapping[str, Any], catalog: ShapeCatalog, rules: Optional[ScoringRules] = None,
                      max_active_blocks: Optional[int] = None) -> GameSession:
    if not isinstance(data, Mapping):
        raise corrupt_snapshot("snapshot must be an object")
    version = _int(data, "schemaVersion", SCHEMA_VERSION)
    if version > SCHEMA_VERSION or version < 1:
        raise corrupt_snapshot(f"unsupported schema version {version}", schema_version=version)

    rules = rules or ScoringRules()
    defaults = GameSession(grid=Grid.empty(1))
    undo_raw = data.get("lastSnapshotForUndo")
    previous = None
    if undo_raw is not None:
        previous = session_from_dict(undo_raw, catalog, rules, max_active_blocks)

    lines_cleared = _int(data, "linesCleared", 0)
    session = GameSession(
        grid=_grid(data),
        block_queue=_queue(data, catalog),
        status=_enum(data, "status", _STATUS_BY_NAME, defaults.status),
        session_id=str(data.get("sessionId") or defaults.session_id),
        score=_int(data, "score", 0),
        level=_int(data, "level", rules.level_for_lines(lines_cleared)),
        lines_cleared=lines_cleared,
        combo_count=_int(data, "comboCount", 0),
        max_combo=_int(data, "maxCombo", 0),
        streak_count=_int(data, "streakCount", 0),
        max_streak=_int(data, "maxStreak", 0),
        blocks_placed=_int(data, "blocksPlaced", 0),
        perfect_clears=_int(data, "perfectClears", 0),
        remaining_undos=_int(data, "remainingUndos", defaults.remaining_undos),
        inventory=_power_up_values(data, "inventory", int),
        used_power_ups=_power_up_values(data, "usedPowerUps", int),
        cooldowns=_power_up_values(data, "cooldowns", float),
        difficulty=_enum(data, "difficulty", _DIFFICULTY_BY_NAME, defaults.difficulty),
        mode=str(data.get("mode", defaults.mode)),
        play_seconds=_float(data, "playSeconds", 0.0),
        next_block_serial=_int(data, "nextBlockSerial", 0),
        last_snapshot_for_undo=previous,
    )
    if previous is not None and previous.grid.size != session.grid.size:
        raise corrupt_snapshot("undo snapshot grid size differs")
    try:
        check_invariants(session, rules, max_active_blocks)
    except GameError as exc:
        raise corrupt_snapshot(f"snapshot violates invariant: {exc.message}", **exc.details) from exc
    # Serials must stay ahead of ids already handed out
    serials = [int(b.id[1:]) for b in session.block_queue if b.id[:1] == "b" and b.id[1:].isdigit()]
    if serials and session.next_block_serial <= max(serials):
        session = replace(session, next_block_serial=max(serials) + 1)
    return session


def dumps(session: GameSession) -> str:
    return json.dumps(session_to_dict(session))


def loads(text: str, catalog: ShapeCatalog, rules: Optional[ScoringRules] = None,
          max_active_blocks: Optional[int] = None) -> GameSession:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise corrupt_snapshot(f"snapshot is not valid JSON: {exc}") from exc
    return session_from_dict(data, catalog, rules, max_active_blocks)


# Achievements: only progress fields are persisted; definitions come from code


def achievement_to_dict(achievement: Achievement) -> Dict[str, Any]:
    return {
        "id": achievement.id,
        "currentProgress": achievement.current_progress,
        "isUnlocked": achievement.is_unlocked,
        "unlockedAt": achievement.unlocked_at.isoformat() if achievement.unlocked_at else None,
        "timesClaimed": achievement.times_claimed,
        "progressBaseline": achievement.progress_baseline,
    }


def achievements_to_list(achievements: Iterable[Achievement]) -> List[Dict[str, Any]]:
    return [achievement_to_dict(a) for a in achievements]


def merge_achievement_progress(definitions: Iterable[Achievement],
                               saved: Iterable[Mapping[str, Any]]) -> Tuple[Achievement, ...]:
    """Apply saved progress onto ``definitions``; unknown saved ids are dropped."""
    by_id = {}
    for item in saved:
        if not isinstance(item, Mapping) or "id" not in item:
            raise corrupt_snapshot("malformed achievement entry")
        if not isinstance(item["id"], str):
            raise corrupt_snapshot("achievement id must be a string")
        by_id[item["id"]] = item

    merged: List[Achievement] = []
    for definition in definitions:
        item = by_id.get(definition.id)
        if item is None:
            merged.append(definition)
            continue
        progress = _int(item, "currentProgress", 0)
        unlocked = bool(item.get("isUnlocked", False))
        unlocked_at_raw = item.get("unlockedAt")
        try:
            unlocked_at = datetime.fromisoformat(unlocked_at_raw) if unlocked_at_raw else None
        except (TypeError, ValueError):
            raise corrupt_snapshot("bad unlockedAt", achievement=definition.id) from None
        if not 0 <= progress <= definition.target_value:
            raise corrupt_snapshot("achievement progress out of range", achievement=definition.id)
        if unlocked and progress != definition.target_value:
            raise corrupt_snapshot("unlocked achievement below target", achievement=definition.id)
        merged.append(replace(
            definition,
            current_progress=progress,
            is_unlocked=unlocked,
            unlocked_at=unlocked_at,
            times_claimed=_int(item, "timesClaimed", 0),
            progress_baseline=_int(item, "progressBaseline", 0),
        ))
    unknown = sorted(by_id.keys() - {d.id for d in merged})
    if unknown:
        logger.debug("dropped saved progress for unknown achievements: %s", unknown)
    return tuple(merged)
