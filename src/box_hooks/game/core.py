"""Session controller: the single entry point that drives a game.

Every operation takes the current ``GameSession`` to a new one and reports the
outcome as an ``ActionResult``. Rejected commands leave the session untouched
and carry the ``GameError`` instead of raising; only ``restore`` raises.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .achievements import (
    DEFAULT_ACHIEVEMENTS,
    Achievement,
    GameDataSnapshot,
    claim,
    evaluate_all,
)
from .clearing import NO_CLEAR, ClearResult, clear_lines
from .errors import GameError, corrupt_snapshot, invalid_action, invalid_placement
from .events import EventSink, EventType, GameEvent, SessionStore, line_clear_event
from .grid import Coordinate, Grid
from .pieces import DEFAULT_CATALOG, ActiveBlock, BlockGenerator, ShapeCatalog
from .placement import can_place, count_legal_placements, has_any_legal_placement, legal_origins
from .powerups import Hint, PowerUpController, PowerUpRules, parse_power_up
from .rules import ScoreDelta, ScoringEngine, ScoringRules
from .serialization import session_from_dict, session_to_dict
from .session import Difficulty, GameSession, GameStatus, PlayerStats, PowerUpType, check_invariants


logger = logging.getLogger(__name__)


@dataclass
class GameConfig:
    grid_size: int = 8
    max_active_blocks: int = 3
    color_count: int = 6
    difficulty: Difficulty = Difficulty.NORMAL
    mode: str = "classic"
    random_seed: Optional[int] = None


@dataclass(frozen=True)
class ActionResult:
    session: GameSession
    accepted: bool = True
    error: Optional[GameError] = None
    events: Tuple[GameEvent, ...] = ()
    score_delta: Optional[ScoreDelta] = None
    clear: ClearResult = NO_CLEAR
    hint: Optional[Hint] = None
    unlocked: Tuple[Achievement, ...] = ()

    @property
    def event_tags(self) -> List[str]:
        return [e.tag for e in self.events]


class GameSessionController:
    def __init__(
        self,
        config: Optional[GameConfig] = None,
        rules: Optional[ScoringRules] = None,
        power_up_rules: Optional[PowerUpRules] = None,
        catalog: Optional[ShapeCatalog] = None,
        achievements: Optional[Iterable[Achievement]] = None,
        player_stats: Optional[PlayerStats] = None,
        sinks: Sequence[EventSink] = (),
        store: Optional[SessionStore] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config or GameConfig()
        self.rules = rules or ScoringRules()
        self.scoring = ScoringEngine(self.rules)
        self.catalog = catalog or DEFAULT_CATALOG
        self.generator = BlockGenerator(self.catalog, seed=self.config.random_seed,
                                        color_count=self.config.color_count)
        self.power_ups = PowerUpController(power_up_rules, self.generator, self.config.max_active_blocks)
        self.sinks: List[EventSink] = list(sinks)
        self.store = store
        self.clock = clock or time.time
        self._achievements: Tuple[Achievement, ...] = tuple(
            DEFAULT_ACHIEVEMENTS if achievements is None else achievements
        )
        self._stats = player_stats or PlayerStats()
        self._last_tick: Optional[float] = None
        self._session = self._new_session()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def session(self) -> GameSession:
        return self._session

    @property
    def achievements(self) -> Tuple[Achievement, ...]:
        return self._achievements

    @property
    def player_stats(self) -> PlayerStats:
        return self._stats

    @property
    def is_game_over(self) -> bool:
        return self._session.status is GameStatus.GAME_OVER

    def legal_placements(self) -> Iterator[Tuple[int, ActiveBlock, int, int]]:
        """Yield ``(slot, block, row, col)`` for every legal move in the queue."""
        grid = self._session.grid
        for slot, block in enumerate(self._session.block_queue):
            if block.is_locked:
                continue
            shape = self.catalog.get(block.shape_id)
            for row, col in legal_origins(grid, shape):
                yield slot, block, row, col

    def legal_move_count(self) -> int:
        """Number of legal (block, origin) pairs over the unlocked queue."""
        grid = self._session.grid
        return sum(count_legal_placements(grid, self.catalog.get(b.shape_id))
                   for b in self._session.block_queue if not b.is_locked)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def start(self) -> ActionResult:
        session = self._session
        if session.status is not GameStatus.INITIAL:
            return self._reject("start", invalid_action("Game already started", status=session.status.name))
        queue = self.generator.spawn(self.config.max_active_blocks, session.next_block_serial)
        session = replace(
            session,
            block_queue=queue,
            next_block_serial=session.next_block_serial + len(queue),
            status=GameStatus.PLAYING,
        )
        self._last_tick = self.clock()
        logger.debug("session %s started (%s)", session.session_id, session.difficulty.name.lower())
        return self._commit(self._settle(session), [])

    def place_block(self, block_id: str, row: int, col: int) -> ActionResult:
        try:
            session = self._require_playing("place_block")
            block = session.find_block(block_id)
            if block is None:
                raise invalid_action(f"Unknown block id {block_id!r}", block_id=block_id)
            if block.is_locked:
                raise invalid_action(f"Block {block_id!r} is locked", block_id=block_id)
            shape = self.catalog.get(block.shape_id)
            if not can_place(self._session.grid, shape, row, col):
                raise invalid_placement("Block does not fit there", block_id=block_id, row=row, col=col)
        except GameError as exc:
            return self._reject("place_block", exc)

        now = self.clock()
        session = self._advance_play_time(session, now)
        grid, clear = clear_lines(session.grid.with_cells_set(shape.cells_at(row, col)))
        delta = self.scoring.compute_delta(session.scoring_state, clear, grid.is_empty())

        queue = tuple(b for b in session.block_queue if b.id != block_id)
        serial = session.next_block_serial
        if not queue:
            queue = self.generator.spawn(self.config.max_active_blocks, serial)
            serial += len(queue)

        lines_cleared = session.lines_cleared + clear.total_lines
        state = delta.state
        new = replace(
            session,
            grid=grid,
            block_queue=queue,
            next_block_serial=serial,
            score=session.score + delta.total,
            lines_cleared=lines_cleared,
            level=self.scoring.next_level(session.level, lines_cleared),
            combo_count=state.combo_count,
            max_combo=state.max_combo,
            streak_count=state.streak_count,
            max_streak=state.max_streak,
            blocks_placed=session.blocks_placed + 1,
            perfect_clears=session.perfect_clears + int(delta.is_perfect_clear),
            last_snapshot_for_undo=session.detached(),
        )

        events = [GameEvent(EventType.BLOCK_PLACE, {"blockId": block_id, "row": row, "col": col,
                                                    "shapeId": block.shape_id})]
        if clear.total_lines:
            events.append(line_clear_event(clear.total_lines))
        if delta.is_perfect_clear:
            events.append(GameEvent(EventType.PERFECT_CLEAR, {"bonus": delta.perfect_clear_bonus}))
        if state.combo_count >= 2:
            events.append(GameEvent(EventType.COMBO_ACHIEVED, {"combo": state.combo_count}))
        logger.debug("placed %s at (%d, %d): +%d, %d lines", block_id, row, col, delta.total, clear.total_lines)
        return self._commit(self._settle(new), events, now=now, score_delta=delta, clear=clear)

    def use_power_up(self, kind: Any, target: Optional[Coordinate] = None) -> ActionResult:
        try:
            power_up = parse_power_up(kind)
            session = self._require_playing("use_power_up")
            now = self.clock()
            new, hint = self.power_ups.apply(self.power_ups.prune_cooldowns(session, now), power_up, now,
                                             self.catalog, target)
        except GameError as exc:
            return self._reject("use_power_up", exc)

        new = self._advance_play_time(new, now)
        if power_up is not PowerUpType.HINT:
            new = self._settle(new)
        payload: Dict[str, Any] = {"powerUp": power_up.name.lower(), "remaining": new.power_up_count(power_up)}
        if hint is not None:
            payload.update(blockId=hint.block_id, row=hint.row, col=hint.col)
        if target is not None:
            payload["target"] = [int(target[0]), int(target[1])]
        logger.debug("power-up %s used", power_up.name.lower())
        return self._commit(new, [GameEvent(EventType.POWER_UP_USED, payload)], now=now, hint=hint)

    def pause(self) -> ActionResult:
        try:
            session = self._require_playing("pause")
        except GameError as exc:
            return self._reject("pause", exc)
        now = self.clock()
        session = replace(self._advance_play_time(session, now), status=GameStatus.PAUSED)
        self._last_tick = None
        return self._commit(session, [], now=now)

    def resume(self) -> ActionResult:
        session = self._session
        if session.status is not GameStatus.PAUSED:
            return self._reject("resume", invalid_action("Game is not paused", status=session.status.name))
        self._last_tick = self.clock()
        return self._commit(replace(session, status=GameStatus.PLAYING), [], now=self._last_tick)

    def restart(self) -> ActionResult:
        old = self._session
        if old.status in (GameStatus.PLAYING, GameStatus.PAUSED):
            # Abandoned games still count towards the profile
            self._stats = self._stats.fold(self._advance_play_time(old, self.clock()))
        logger.debug("restarting session %s (%s)", old.session_id, old.status.name)
        self._session = self._new_session(old.difficulty, old.mode)
        self._last_tick = None
        return self.start()

    def tick(self, now: Optional[float] = None) -> ActionResult:
        """Advance play time and expire cooldowns; a no-op unless playing."""
        session = self._session
        if not session.is_playing:
            return ActionResult(session=session)
        now = self.clock() if now is None else float(now)
        session = self.power_ups.prune_cooldowns(self._advance_play_time(session, now), now)
        return self._commit(session, [], now=now)

    def claim_achievement(self, achievement_id: str) -> ActionResult:
        try:
            index = next(i for i, a in enumerate(self._achievements) if a.id == achievement_id)
        except StopIteration:
            return self._reject("claim_achievement",
                                invalid_action(f"Unknown achievement {achievement_id!r}", achievement=achievement_id))
        try:
            claimed = claim(self._achievements[index], self._achievement_data())
        except GameError as exc:
            return self._reject("claim_achievement", exc)

        achievements = list(self._achievements)
        achievements[index] = claimed
        self._achievements = tuple(achievements)
        session = self._session
        rewards = self._achievements[index].power_up_rewards
        if rewards and session.status in (GameStatus.PLAYING, GameStatus.PAUSED):
            inventory = dict(session.inventory)
            for name, count in rewards.items():
                kind = parse_power_up(name)
                if kind is PowerUpType.UNDO:
                    session = replace(session, remaining_undos=session.remaining_undos + int(count))
                else:
                    inventory[kind] = inventory.get(kind, 0) + int(count)
            self._session = replace(session, inventory=inventory)
        logger.info("achievement %s claimed (%d times)", claimed.id, claimed.times_claimed)
        self._persist()
        return ActionResult(session=self._session)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        return session_to_dict(self._session)

    def restore(self, data: Mapping[str, Any]) -> ActionResult:
        """Replace the live session with a saved one; raises CORRUPT_SNAPSHOT."""
        session = session_from_dict(data, self.catalog, self.rules, self.config.max_active_blocks)
        if session.grid.size != self.config.grid_size:
            raise corrupt_snapshot("grid size does not match configuration",
                                   size=session.grid.size, expected=self.config.grid_size)
        if session.is_playing and not session.block_queue:
            queue = self.generator.spawn(self.config.max_active_blocks, session.next_block_serial)
            session = replace(session, block_queue=queue, next_block_serial=session.next_block_serial + len(queue))
        self._session = session
        self._last_tick = self.clock() if session.is_playing else None
        logger.debug("restored session %s (%s)", session.session_id, session.status.name)
        return self._commit(self._settle(session), [])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _new_session(self, difficulty: Optional[Difficulty] = None, mode: Optional[str] = None) -> GameSession:
        difficulty = difficulty or self.config.difficulty
        undos, inventory = self.power_ups.rules.inventory_for(difficulty)
        return GameSession(
            grid=Grid.empty(self.config.grid_size),
            difficulty=difficulty,
            mode=mode or self.config.mode,
            remaining_undos=undos,
            inventory=inventory,
        )

    def _require_playing(self, action: str) -> GameSession:
        session = self._session
        if session.status is not GameStatus.PLAYING:
            raise invalid_action(f"{action} not allowed while {session.status.name.lower()}",
                                 status=session.status.name)
        return session

    def _advance_play_time(self, session: GameSession, now: float) -> GameSession:
        if self._last_tick is None or not session.is_playing:
            return session
        elapsed = max(0.0, now - self._last_tick)
        if elapsed == 0.0:
            return session
        return replace(session, play_seconds=session.play_seconds + elapsed)

    def _achievement_data(self) -> GameDataSnapshot:
        session = self._session
        if session.status is GameStatus.GAME_OVER:
            # Finished games are already part of the profile
            session = replace(session, lines_cleared=0, blocks_placed=0)
        return GameDataSnapshot.from_session(session, self._stats)

    def _settle(self, session: GameSession) -> GameSession:
        """Mark the session over when no queued block fits anywhere."""
        if not session.is_playing:
            return session
        for block in session.block_queue:
            if block.is_locked:
                continue
            if has_any_legal_placement(session.grid, self.catalog.get(block.shape_id)):
                return session
        return replace(session, status=GameStatus.GAME_OVER)

    def _reject(self, action: str, exc: GameError) -> ActionResult:
        logger.debug("%s rejected: %s", action, exc)
        return ActionResult(session=self._session, accepted=False, error=exc)

    def _commit(self, session: GameSession, events: List[GameEvent], now: Optional[float] = None,
                **extra: Any) -> ActionResult:
        previous = self._session
        try:
            check_invariants(session, self.rules, self.config.max_active_blocks)
        except GameError as exc:
            logger.error("session %s moved to error: %s", previous.session_id, exc)
            self._session = replace(previous, status=GameStatus.ERROR)
            self._last_tick = None
            self._persist()
            return ActionResult(session=self._session, accepted=False, error=exc)

        game_over = session.status is GameStatus.GAME_OVER and previous.status is not GameStatus.GAME_OVER
        now = self.clock() if now is None else now
        check = evaluate_all(
            self._achievements,
            GameDataSnapshot.from_session(session, self._stats, game_over=game_over),
            now=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        self._achievements = check.achievements
        for achievement in check.newly_unlocked:
            events.append(GameEvent(EventType.ACHIEVEMENT_UNLOCKED, {
                "id": achievement.id,
                "name": achievement.name,
                "coinReward": achievement.coin_reward,
            }))
        if game_over:
            self._stats = self._stats.fold(session)
            self._last_tick = None
            events.append(GameEvent(EventType.GAME_OVER, {"score": session.score, "level": session.level,
                                                          "linesCleared": session.lines_cleared}))
            logger.info("game over: session %s scored %d", session.session_id, session.score)

        if session.is_playing and self._last_tick is not None:
            self._last_tick = max(self._last_tick, now)
        self._session = session
        self._dispatch(events)
        self._persist()
        return ActionResult(session=session, events=tuple(events), unlocked=check.newly_unlocked, **extra)

    def _dispatch(self, events: Iterable[GameEvent]) -> None:
        for event in events:
            for sink in self.sinks:
                try:
                    sink.publish(event)
                except Exception:
                    logger.exception("event sink %r failed on %s", sink, event.tag)

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.snapshot())
        except Exception:
            logger.exception("session store %r failed", self.store)
