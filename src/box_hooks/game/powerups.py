from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import insufficient_power_up, invalid_action, invalid_placement
from .grid import Coordinate
from .pieces import BlockGenerator, ShapeCatalog
from .placement import can_place
from .session import Difficulty, GameSession, PowerUpType


logger = logging.getLogger(__name__)


def _default_starting_inventory() -> Dict[Difficulty, Dict[PowerUpType, int]]:
    return {
        Difficulty.EASY: {PowerUpType.UNDO: 5, PowerUpType.HINT: 8, PowerUpType.SHUFFLE: 3, PowerUpType.BOMB: 2},
        Difficulty.NORMAL: {PowerUpType.UNDO: 3, PowerUpType.HINT: 5, PowerUpType.SHUFFLE: 2, PowerUpType.BOMB: 1},
        Difficulty.HARD: {PowerUpType.UNDO: 2, PowerUpType.HINT: 3, PowerUpType.SHUFFLE: 1, PowerUpType.BOMB: 1},
        Difficulty.EXPERT: {PowerUpType.UNDO: 1, PowerUpType.HINT: 1, PowerUpType.SHUFFLE: 0, PowerUpType.BOMB: 0},
    }


def _default_cooldowns() -> Dict[PowerUpType, float]:
    return {PowerUpType.UNDO: 0.0, PowerUpType.HINT: 0.0, PowerUpType.SHUFFLE: 90.0, PowerUpType.BOMB: 60.0}


@dataclass(frozen=True)
class PowerUpRules:
    starting_inventory: Mapping[Difficulty, Mapping[PowerUpType, int]] = field(default_factory=_default_starting_inventory)
    cooldown_seconds: Mapping[PowerUpType, float] = field(default_factory=_default_cooldowns)
    bomb_radius: int = 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PowerUpRules":
        """Build from string-keyed tables, e.g. ``{"cooldowns": {"bomb": 30}}``."""
        kwargs: Dict[str, Any] = {}
        if "startingInventory" in data:
            kwargs["starting_inventory"] = {
                Difficulty[str(diff).upper()]: {PowerUpType[str(k).upper()]: int(v) for k, v in counts.items()}
                for diff, counts in data["startingInventory"].items()
            }
        if "cooldowns" in data:
            kwargs["cooldown_seconds"] = {
                **_default_cooldowns(),
                **{PowerUpType[str(k).upper()]: float(v) for k, v in data["cooldowns"].items()},
            }
        if "bombRadius" in data:
            kwargs["bomb_radius"] = int(data["bombRadius"])
        return cls(**kwargs)

    def inventory_for(self, difficulty: Difficulty) -> Tuple[int, Dict[PowerUpType, int]]:
        """Return ``(undos, inventory)`` for a new session."""
        counts = dict(self.starting_inventory.get(difficulty, {}))
        undos = int(counts.pop(PowerUpType.UNDO, 0))
        inventory = {kind: int(counts.get(kind, 0)) for kind in (PowerUpType.HINT, PowerUpType.SHUFFLE, PowerUpType.BOMB)}
        return undos, inventory

    def cooldown_for(self, kind: PowerUpType) -> float:
        return float(self.cooldown_seconds.get(kind, 0.0))


@dataclass(frozen=True)
class Hint:
    block_id: str
    row: int
    col: int


def parse_power_up(kind: Any) -> PowerUpType:
    if isinstance(kind, PowerUpType):
        return kind
    try:
        return PowerUpType[str(kind).upper()]
    except KeyError:
        raise invalid_action(f"Unknown power-up {kind!r}", power_up=str(kind)) from None


def find_hint(session: GameSession, catalog: ShapeCatalog) -> Optional[Hint]:
    """First legal placement: origins in row-major order, ties in queue order."""
    shapes = [(block, catalog.get(block.shape_id)) for block in session.block_queue if not block.is_locked]
    grid = session.grid
    for row in range(grid.size):
        for col in range(grid.size):
            for block, shape in shapes:
                if can_place(grid, shape, row, col):
                    return Hint(block.id, row, col)
    return None


def bomb_cells(size: int, target: Coordinate, radius: int) -> list[Coordinate]:
    row, col = target
    return [
        (r, c)
        for r in range(row - radius, row + radius + 1)
        for c in range(col - radius, col + radius + 1)
        if 0 <= r < size and 0 <= c < size
    ]


class PowerUpController:
    """Applies power-up effects to a session.

    Each ``apply`` either returns the next session (plus a hint for HINT) or
    raises ``GameError``; rejected uses never touch inventory.
    """

    def __init__(self, rules: Optional[PowerUpRules] = None, generator: Optional[BlockGenerator] = None,
                 max_active_blocks: int = 3) -> None:
        self.rules = rules or PowerUpRules()
        self.generator = generator or BlockGenerator()
        self.max_active_blocks = int(max_active_blocks)

    def is_on_cooldown(self, session: GameSession, kind: PowerUpType, now: float) -> bool:
        ready_at = session.cooldowns.get(kind)
        return ready_at is not None and now < ready_at

    def remaining_cooldown(self, session: GameSession, kind: PowerUpType, now: float) -> float:
        ready_at = session.cooldowns.get(kind)
        if ready_at is None:
            return 0.0
        return max(0.0, ready_at - now)

    def prune_cooldowns(self, session: GameSession, now: float) -> GameSession:
        active = {k: v for k, v in session.cooldowns.items() if now < v}
        if len(active) == len(session.cooldowns):
            return session
        return replace(session, cooldowns=active)

    def _check_available(self, session: GameSession, kind: PowerUpType, now: float) -> None:
        if session.power_up_count(kind) <= 0:
            raise insufficient_power_up(f"No {kind.name.lower()} power-ups left", power_up=kind.name)
        if self.is_on_cooldown(session, kind, now):
            raise insufficient_power_up(
                f"{kind.name.lower()} is on cooldown",
                power_up=kind.name,
                remaining=self.remaining_cooldown(session, kind, now),
            )

    def _consume(self, session: GameSession, kind: PowerUpType, now: float) -> Dict[str, Any]:
        """Changes common to every successful use: counts, usage tally, cooldown."""
        used = dict(session.used_power_ups)
        used[kind] = used.get(kind, 0) + 1
        cooldowns = dict(session.cooldowns)
        cooldown = self.rules.cooldown_for(kind)
        if cooldown > 0:
            cooldowns[kind] = now + cooldown
        changes: Dict[str, Any] = {"used_power_ups": used, "cooldowns": cooldowns}
        if kind is PowerUpType.UNDO:
            changes["remaining_undos"] = session.remaining_undos - 1
        else:
            inventory = dict(session.inventory)
            inventory[kind] = inventory.get(kind, 0) - 1
            changes["inventory"] = inventory
        return changes

    def apply(self, session: GameSession, kind: PowerUpType, now: float, catalog: ShapeCatalog,
              target: Optional[Coordinate] = None) -> Tuple[GameSession, Optional[Hint]]:
        self._check_available(session, kind, now)
        if kind is PowerUpType.UNDO:
            return self.undo(session, now), None
        if kind is PowerUpType.HINT:
            return self.hint(session, now, catalog)
        if kind is PowerUpType.SHUFFLE:
            return self.shuffle(session, now), None
        if kind is PowerUpType.BOMB:
            return self.bomb(session, now, target), None
        raise invalid_action(f"Unsupported power-up {kind!r}")

    def undo(self, session: GameSession, now: float) -> GameSession:
        previous = session.last_snapshot_for_undo
        if previous is None:
            raise invalid_action("Nothing to undo")
        changes = self._consume(session, PowerUpType.UNDO, now)
        # Inventory, usage and cooldowns are not part of the rollback
        restored = replace(
            previous.detached(),
            remaining_undos=changes["remaining_undos"],
            used_power_ups=changes["used_power_ups"],
            cooldowns=changes["cooldowns"],
            inventory=dict(session.inventory),
            play_seconds=session.play_seconds,
            status=session.status,
        )
        logger.debug("undo restored score %d -> %d", session.score, restored.score)
        return restored

    def hint(self, session: GameSession, now: float, catalog: ShapeCatalog) -> Tuple[GameSession, Hint]:
        found = find_hint(session, catalog)
        if found is None:
            raise invalid_action("No legal placement to hint")
        changes = self._consume(session, PowerUpType.HINT, now)
        # Hints do not replace the undo snapshot
        return replace(session, **changes), found

    def shuffle(self, session: GameSession, now: float) -> GameSession:
        changes = self._consume(session, PowerUpType.SHUFFLE, now)
        queue = self.generator.spawn(self.max_active_blocks, session.next_block_serial)
        return replace(
            session,
            block_queue=queue,
            next_block_serial=session.next_block_serial + len(queue),
            last_snapshot_for_undo=session.detached(),
            **changes,
        )

    def bomb(self, session: GameSession, now: float, target: Optional[Coordinate]) -> GameSession:
        if target is None:
            raise invalid_action("Bomb needs a target cell")
        row, col = int(target[0]), int(target[1])
        if not session.grid.is_inside(row, col):
            raise invalid_placement("Bomb target outside grid", row=row, col=col)
        changes = self._consume(session, PowerUpType.BOMB, now)
        cells = bomb_cells(session.grid.size, (row, col), self.rules.bomb_radius)
        return replace(
            session,
            grid=session.grid.with_cells_cleared(cells),
            last_snapshot_for_undo=session.detached(),
            **changes,
        )
