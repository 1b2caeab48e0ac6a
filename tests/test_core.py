"""
Tests for the session controller.
"""

import unittest

from box_hooks.game.core import GameConfig, GameSessionController
from box_hooks.game.errors import ErrorKind, GameError
from box_hooks.game.events import RecordingSink
from box_hooks.game.pieces import BlockShape, ShapeCatalog
from box_hooks.game.powerups import PowerUpRules
from box_hooks.game.rules import ScoringRules
from box_hooks.game.session import Difficulty, GameStatus, PlayerStats, PowerUpType


SINGLES = ShapeCatalog([BlockShape("single", [[1]])])
SQUARES = ShapeCatalog([BlockShape("square", [[1, 1], [1, 1]])])


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class ListStore:
    def __init__(self):
        self.saved = []

    def save(self, snapshot):
        self.saved.append(snapshot)


class BrokenSink:
    def publish(self, event):
        raise RuntimeError("speaker unplugged")


def with_grid(controller, cells):
    """Load ``cells`` as the occupied grid through the snapshot interface."""
    data = controller.snapshot()
    size = controller.config.grid_size
    data["grid"] = [[(r, c) in cells for c in range(size)] for r in range(size)]
    data["lastSnapshotForUndo"] = None
    controller.restore(data)


class ControllerTestCase(unittest.TestCase):
    catalog = SINGLES

    def make_controller(self, **kwargs):
        kwargs.setdefault("config", GameConfig(random_seed=0))
        kwargs.setdefault("catalog", self.catalog)
        kwargs.setdefault("clock", FakeClock())
        controller = GameSessionController(**kwargs)
        controller.start()
        return controller


class TestLifecycle(ControllerTestCase):
    """Start, pause, resume and restart."""

    def test_initial_state(self):
        controller = GameSessionController(catalog=SINGLES)
        self.assertIs(controller.session.status, GameStatus.INITIAL)
        result = controller.start()
        self.assertTrue(result.accepted)
        session = result.session
        self.assertIs(session.status, GameStatus.PLAYING)
        self.assertEqual([b.id for b in session.block_queue], ["b0", "b1", "b2"])
        self.assertTrue(session.grid.is_empty())
        self.assertEqual(session.remaining_undos, 3)
        self.assertEqual(session.inventory[PowerUpType.HINT], 5)

    def test_start_twice_rejected(self):
        controller = self.make_controller()
        result = controller.start()
        self.assertFalse(result.accepted)
        self.assertIs(result.error.kind, ErrorKind.INVALID_ACTION)

    def test_commands_before_start_rejected(self):
        controller = GameSessionController(catalog=SINGLES)
        result = controller.place_block("b0", 0, 0)
        self.assertIs(result.error.kind, ErrorKind.INVALID_ACTION)

    def test_pause_and_resume(self):
        clock = FakeClock(100.0)
        controller = self.make_controller(clock=clock)
        clock.now = 130.0
        paused = controller.pause()
        self.assertIs(paused.session.status, GameStatus.PAUSED)
        self.assertAlmostEqual(paused.session.play_seconds, 30.0)

        rejected = controller.place_block("b0", 0, 0)
        self.assertFalse(rejected.accepted)
        self.assertIs(rejected.session, paused.session)

        clock.now = 500.0
        resumed = controller.resume()
        self.assertIs(resumed.session.status, GameStatus.PLAYING)
        clock.now = 510.0
        ticked = controller.tick()
        # Paused time does not count
        self.assertAlmostEqual(ticked.session.play_seconds, 40.0)
        self.assertFalse(controller.resume().accepted)

    def test_restart_folds_stats(self):
        controller = self.make_controller()
        controller.place_block("b0", 0, 0)
        first_id = controller.session.session_id
        result = controller.restart()
        self.assertIs(result.session.status, GameStatus.PLAYING)
        self.assertNotEqual(result.session.session_id, first_id)
        self.assertEqual(result.session.score, 0)
        self.assertEqual(controller.player_stats.games_played, 1)
        self.assertEqual(controller.player_stats.best_score, 10)

    def test_difficulty_inventory(self):
        controller = self.make_controller(config=GameConfig(difficulty=Difficulty.EXPERT))
        self.assertEqual(controller.session.remaining_undos, 1)
        self.assertEqual(controller.session.inventory[PowerUpType.BOMB], 0)


class TestPlacement(ControllerTestCase):
    """place_block scoring, clearing and events."""

    def test_legal_placement(self):
        controller = self.make_controller()
        before = controller.session
        result = controller.place_block("b0", 3, 4)
        self.assertTrue(result.accepted)
        session = result.session
        self.assertEqual(session.grid.occupied_count(), before.grid.occupied_count() + 1)
        self.assertTrue(session.grid.is_occupied(3, 4))
        self.assertEqual(session.score, 10)
        self.assertEqual([b.id for b in session.block_queue], ["b1", "b2"])
        self.assertEqual(session.blocks_placed, 1)
        self.assertIn("blockPlace", result.event_tags)

    def test_legal_move_count(self):
        controller = self.make_controller()
        self.assertEqual(controller.legal_move_count(), 3 * 64)
        with_grid(controller, {(0, 0), (7, 7)})
        self.assertEqual(controller.legal_move_count(), 3 * 62)

    def test_illegal_placement_leaves_session(self):
        controller = self.make_controller()
        controller.place_block("b0", 0, 0)
        before = controller.session
        result = controller.place_block("b1", 0, 0)
        self.assertFalse(result.accepted)
        self.assertIs(result.error.kind, ErrorKind.INVALID_PLACEMENT)
        self.assertIs(controller.session, before)
        out_of_bounds = controller.place_block("b1", 8, 0)
        self.assertIs(out_of_bounds.error.kind, ErrorKind.INVALID_PLACEMENT)

    def test_unknown_block(self):
        controller = self.make_controller()
        result = controller.place_block("b42", 0, 0)
        self.assertIs(result.error.kind, ErrorKind.INVALID_ACTION)

    def test_single_line_clear(self):
        """Completing row 0 scores block place plus a single line."""
        controller = self.make_controller()
        with_grid(controller, {(0, c) for c in range(7)} | {(7, 7)})
        result = controller.place_block("b0", 0, 7)
        session = result.session
        self.assertEqual(result.clear.rows, (0,))
        self.assertEqual(result.score_delta.total, 110)
        self.assertEqual(session.score, 110)
        self.assertEqual(session.combo_count, 1)
        self.assertEqual(session.lines_cleared, 1)
        self.assertEqual(session.grid.occupied_count(), 1)
        self.assertEqual(result.event_tags[:2], ["blockPlace", "singleLine"])
        self.assertNotIn("perfectClear", result.event_tags)

    def test_perfect_clear(self):
        controller = self.make_controller()
        with_grid(controller, {(0, c) for c in range(7)})
        result = controller.place_block("b0", 0, 7)
        self.assertEqual(result.session.score, 1110)
        self.assertEqual(result.session.perfect_clears, 1)
        self.assertIn("perfectClear", result.event_tags)

    def test_row_and_column_clear(self):
        controller = self.make_controller()
        cells = {(0, c) for c in range(1, 8)} | {(r, 0) for r in range(1, 8)} | {(5, 5)}
        with_grid(controller, cells)
        result = controller.place_block("b0", 0, 0)
        self.assertEqual(result.clear.total_lines, 2)
        self.assertEqual(result.clear.cells_cleared, 15)
        self.assertEqual(result.session.score, 10 + 250)
        self.assertIn("doubleLine", result.event_tags)

    def test_combo_builds_and_resets(self):
        controller = self.make_controller()
        cells = {(0, c) for c in range(7)} | {(1, c) for c in range(7)} | {(7, 7)}
        with_grid(controller, cells)
        controller.place_block("b0", 0, 7)
        second = controller.place_block("b1", 1, 7)
        self.assertEqual(second.session.combo_count, 2)
        self.assertEqual(second.score_delta.combo_bonus, 50)
        self.assertIn("comboAchieved", second.event_tags)
        third = controller.place_block("b2", 4, 4)
        self.assertEqual(third.session.combo_count, 0)
        self.assertEqual(third.session.max_combo, 2)
        # Streak is not broken by the miss
        self.assertEqual(third.session.streak_count, 2)

    def test_queue_refills_when_empty(self):
        controller = self.make_controller()
        for block_id, col in (("b0", 0), ("b1", 1), ("b2", 2)):
            controller.place_block(block_id, 0, col)
        self.assertEqual([b.id for b in controller.session.block_queue], ["b3", "b4", "b5"])

    def test_game_over(self):
        """A catalog of 2x2 squares on a 3x3 grid runs out after one move."""
        sink = RecordingSink()
        controller = GameSessionController(config=GameConfig(grid_size=3, random_seed=1),
                                           catalog=SQUARES, sinks=[sink], clock=FakeClock())
        controller.start()
        self.assertIs(controller.session.status, GameStatus.PLAYING)
        result = controller.place_block("b0", 0, 0)
        self.assertTrue(result.accepted)
        self.assertIs(result.session.status, GameStatus.GAME_OVER)
        self.assertTrue(controller.is_game_over)
        self.assertIn("gameOver", result.event_tags)
        self.assertIn("gameOver", sink.tags)
        self.assertEqual(controller.player_stats.games_played, 1)
        # Terminal: nothing else is accepted until restart
        self.assertFalse(controller.place_block("b1", 0, 0).accepted)
        self.assertFalse(controller.use_power_up("hint").accepted)
        self.assertIs(controller.restart().session.status, GameStatus.PLAYING)
        self.assertEqual(controller.player_stats.games_played, 1)

    def test_invariant_violation_moves_to_error(self):
        base = dict(ScoringRules().base_scores, blockPlace=-50)
        controller = self.make_controller(rules=ScoringRules(base_scores=base))
        result = controller.place_block("b0", 0, 0)
        self.assertFalse(result.accepted)
        self.assertIs(result.error.kind, ErrorKind.INVARIANT_VIOLATION)
        self.assertIs(controller.session.status, GameStatus.ERROR)
        self.assertEqual(controller.session.score, 0)
        self.assertFalse(controller.place_block("b1", 0, 0).accepted)
        self.assertIs(controller.restart().session.status, GameStatus.PLAYING)


class TestPowerUps(ControllerTestCase):
    """use_power_up through the controller."""

    def test_undo_round_trip(self):
        controller = self.make_controller()
        before = controller.session
        controller.place_block("b0", 2, 2)
        result = controller.use_power_up("undo")
        self.assertTrue(result.accepted)
        restored = result.session
        self.assertEqual(restored.grid, before.grid)
        self.assertEqual(restored.score, before.score)
        self.assertEqual(restored.block_queue, before.block_queue)
        self.assertEqual(restored.blocks_placed, 0)
        self.assertEqual(restored.remaining_undos, 2)
        self.assertIn("powerUpUsed", result.event_tags)

        # One level of history only
        again = controller.use_power_up(PowerUpType.UNDO)
        self.assertIs(again.error.kind, ErrorKind.INVALID_ACTION)
        self.assertEqual(controller.session.remaining_undos, 2)

    def test_rejected_power_up_keeps_play_time(self):
        clock = FakeClock(1000.0)
        controller = self.make_controller(clock=clock)
        clock.now = 1100.0
        self.assertFalse(controller.use_power_up("undo").accepted)
        clock.now = 1110.0
        self.assertAlmostEqual(controller.tick().session.play_seconds, 110.0)

    def test_undo_with_zero_undos(self):
        rules = PowerUpRules.from_mapping({"startingInventory": {"normal": {"undo": 0, "hint": 1}}})
        controller = self.make_controller(power_up_rules=rules)
        controller.place_block("b0", 0, 0)
        before = controller.session
        result = controller.use_power_up("undo")
        self.assertFalse(result.accepted)
        self.assertIs(result.error.kind, ErrorKind.INSUFFICIENT_POWER_UP)
        self.assertIs(controller.session, before)
        self.assertEqual(controller.session.remaining_undos, 0)

    def test_hint(self):
        controller = self.make_controller()
        with_grid(controller, {(0, 0)})
        result = controller.use_power_up("hint")
        self.assertEqual((result.hint.block_id, result.hint.row, result.hint.col), ("b0", 0, 1))
        self.assertEqual(result.session.inventory[PowerUpType.HINT], 4)
        self.assertEqual(result.session.grid.occupied_count(), 1)

    def test_bomb_cooldown(self):
        clock = FakeClock(1000.0)
        controller = self.make_controller(config=GameConfig(difficulty=Difficulty.EASY), clock=clock)
        with_grid(controller, {(r, c) for r in range(3) for c in range(3)})
        first = controller.use_power_up("bomb", target=(1, 1))
        self.assertTrue(first.accepted)
        self.assertTrue(first.session.grid.is_empty())
        self.assertEqual(first.session.inventory[PowerUpType.BOMB], 1)

        clock.now = 1030.0
        blocked = controller.use_power_up("bomb", target=(5, 5))
        self.assertIs(blocked.error.kind, ErrorKind.INSUFFICIENT_POWER_UP)
        self.assertEqual(controller.session.inventory[PowerUpType.BOMB], 1)

        clock.now = 1061.0
        controller.tick()
        self.assertNotIn(PowerUpType.BOMB, controller.session.cooldowns)
        self.assertTrue(controller.use_power_up("bomb", target=(5, 5)).accepted)
        self.assertEqual(controller.session.inventory[PowerUpType.BOMB], 0)

    def test_shuffle(self):
        controller = self.make_controller()
        result = controller.use_power_up("shuffle")
        self.assertEqual([b.id for b in result.session.block_queue], ["b3", "b4", "b5"])
        self.assertEqual(result.session.score, 0)

    def test_unknown_power_up(self):
        controller = self.make_controller()
        self.assertIs(controller.use_power_up("teleport").error.kind, ErrorKind.INVALID_ACTION)


class TestCollaborators(ControllerTestCase):
    """Event sinks, session store and achievements."""

    def test_events_and_store(self):
        sink = RecordingSink()
        store = ListStore()
        controller = self.make_controller(sinks=[sink], store=store)
        result = controller.place_block("b0", 0, 0)
        self.assertEqual(sink.tags, ["blockPlace", "achievementUnlocked"])
        self.assertEqual(store.saved[-1]["blocksPlaced"], 1)
        self.assertEqual([a.id for a in result.unlocked], ["first_block"])

    def test_failing_sink_is_logged(self):
        controller = self.make_controller(sinks=[BrokenSink()])
        with self.assertLogs("box_hooks.game.core", level="ERROR"):
            result = controller.place_block("b0", 0, 0)
        self.assertTrue(result.accepted)
        self.assertEqual(controller.session.blocks_placed, 1)

    def test_unlock_fires_once(self):
        controller = self.make_controller()
        controller.place_block("b0", 0, 0)
        second = controller.place_block("b1", 0, 1)
        self.assertEqual(second.unlocked, ())
        first_block = next(a for a in controller.achievements if a.id == "first_block")
        self.assertTrue(first_block.is_unlocked)

    def test_claim_achievement(self):
        controller = self.make_controller()
        self.assertIs(controller.claim_achievement("nope").error.kind, ErrorKind.INVALID_ACTION)
        self.assertIs(controller.claim_achievement("line_hunter").error.kind, ErrorKind.INVALID_ACTION)
        controller.place_block("b0", 0, 0)
        self.assertIs(controller.claim_achievement("first_block").error.kind, ErrorKind.INVALID_ACTION)

    def test_repeatable_claim_pays_once(self):
        controller = self.make_controller(player_stats=PlayerStats(total_lines_cleared=10))
        hunter = next(a for a in controller.achievements if a.id == "line_hunter")
        self.assertTrue(hunter.is_unlocked)

        self.assertTrue(controller.claim_achievement("line_hunter").accepted)
        self.assertEqual(controller.session.inventory[PowerUpType.HINT], 6)
        controller.pause()
        controller.resume()
        again = controller.claim_achievement("line_hunter")
        self.assertIs(again.error.kind, ErrorKind.INVALID_ACTION)
        self.assertEqual(controller.session.inventory[PowerUpType.HINT], 6)
        hunter = next(a for a in controller.achievements if a.id == "line_hunter")
        self.assertEqual((hunter.current_progress, hunter.progress_baseline), (0, 10))


class TestSnapshots(ControllerTestCase):
    """snapshot and restore through the controller."""

    def test_restore_refills_missing_queue(self):
        controller = self.make_controller()
        controller.place_block("b0", 4, 4)
        data = controller.snapshot()
        del data["blockQueue"]
        data["lastSnapshotForUndo"] = None
        result = self.make_controller().restore(data)
        self.assertIs(result.session.status, GameStatus.PLAYING)
        self.assertEqual([b.id for b in result.session.block_queue], ["b3", "b4", "b5"])
        self.assertEqual(result.session.next_block_serial, 6)

    def test_restore_round_trip(self):
        controller = self.make_controller()
        controller.place_block("b0", 4, 4)
        data = controller.snapshot()
        other = self.make_controller()
        other.restore(data)
        self.assertEqual(other.session, controller.session)
        undo = other.use_power_up("undo")
        self.assertTrue(undo.accepted)
        self.assertTrue(undo.session.grid.is_empty())

    def test_restore_rejects_other_grid_size(self):
        small = self.make_controller(config=GameConfig(grid_size=4))
        controller = self.make_controller()
        with self.assertRaises(GameError) as ctx:
            controller.restore(small.snapshot())
        self.assertIs(ctx.exception.kind, ErrorKind.CORRUPT_SNAPSHOT)


if __name__ == "__main__":
    unittest.main()
