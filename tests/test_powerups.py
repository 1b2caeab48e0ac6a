"""
Tests for power-up rules and effects.
"""

import unittest

from box_hooks.game.errors import ErrorKind, GameError
from box_hooks.game.grid import Grid
from box_hooks.game.pieces import ActiveBlock, BlockGenerator, BlockShape, ShapeCatalog
from box_hooks.game.powerups import (
    Hint,
    PowerUpController,
    PowerUpRules,
    bomb_cells,
    find_hint,
    parse_power_up,
)
from box_hooks.game.session import Difficulty, GameSession, GameStatus, PowerUpType


CATALOG = ShapeCatalog([
    BlockShape("single", [[1]]),
    BlockShape("square", [[1, 1], [1, 1]]),
])


def make_session(**kwargs):
    defaults = dict(
        grid=Grid.empty(8),
        block_queue=(ActiveBlock("b0", "square"), ActiveBlock("b1", "single")),
        status=GameStatus.PLAYING,
        remaining_undos=3,
        inventory={PowerUpType.HINT: 2, PowerUpType.SHUFFLE: 1, PowerUpType.BOMB: 1},
        next_block_serial=2,
    )
    defaults.update(kwargs)
    return GameSession(**defaults)


class TestPowerUpRules(unittest.TestCase):
    """Starting inventories and cooldown tables."""

    def test_inventory_per_difficulty(self):
        rules = PowerUpRules()
        undos, inventory = rules.inventory_for(Difficulty.EASY)
        self.assertEqual(undos, 5)
        self.assertEqual(inventory, {PowerUpType.HINT: 8, PowerUpType.SHUFFLE: 3, PowerUpType.BOMB: 2})
        undos, inventory = rules.inventory_for(Difficulty.EXPERT)
        self.assertEqual(undos, 1)
        self.assertEqual(inventory[PowerUpType.SHUFFLE], 0)

    def test_cooldowns(self):
        rules = PowerUpRules()
        self.assertEqual(rules.cooldown_for(PowerUpType.SHUFFLE), 90.0)
        self.assertEqual(rules.cooldown_for(PowerUpType.BOMB), 60.0)
        self.assertEqual(rules.cooldown_for(PowerUpType.HINT), 0.0)

    def test_from_mapping(self):
        rules = PowerUpRules.from_mapping({
            "startingInventory": {"normal": {"undo": 0, "hint": 1}},
            "cooldowns": {"bomb": 30},
            "bombRadius": 2,
        })
        undos, inventory = rules.inventory_for(Difficulty.NORMAL)
        self.assertEqual(undos, 0)
        self.assertEqual(inventory[PowerUpType.HINT], 1)
        self.assertEqual(inventory[PowerUpType.BOMB], 0)
        self.assertEqual(rules.cooldown_for(PowerUpType.BOMB), 30.0)
        self.assertEqual(rules.cooldown_for(PowerUpType.SHUFFLE), 90.0)
        self.assertEqual(rules.bomb_radius, 2)

    def test_parse_power_up(self):
        self.assertIs(parse_power_up("bomb"), PowerUpType.BOMB)
        self.assertIs(parse_power_up(PowerUpType.HINT), PowerUpType.HINT)
        with self.assertRaises(GameError) as ctx:
            parse_power_up("teleport")
        self.assertIs(ctx.exception.kind, ErrorKind.INVALID_ACTION)


class TestPowerUpEffects(unittest.TestCase):
    """Undo, hint, shuffle and bomb against a session value."""

    def setUp(self):
        self.controller = PowerUpController(generator=BlockGenerator(CATALOG, seed=0))

    def test_hint_scans_row_major_then_queue_order(self):
        session = make_session(grid=Grid.empty(8).with_cells_set([(0, 1)]))
        # (0, 0) fits only the single; the square is first in queue but blocked there
        self.assertEqual(find_hint(session, CATALOG), Hint("b1", 0, 0))
        session = make_session()
        self.assertEqual(find_hint(session, CATALOG), Hint("b0", 0, 0))

    def test_hint_skips_locked_blocks(self):
        session = make_session(block_queue=(ActiveBlock("b0", "square", is_locked=True),
                                            ActiveBlock("b1", "single")))
        self.assertEqual(find_hint(session, CATALOG).block_id, "b1")

    def test_hint_consumes_inventory_only(self):
        session = make_session()
        new, hint = self.controller.apply(session, PowerUpType.HINT, 0.0, CATALOG)
        self.assertEqual(hint, Hint("b0", 0, 0))
        self.assertEqual(new.inventory[PowerUpType.HINT], 1)
        self.assertEqual(new.grid, session.grid)
        self.assertEqual(new.block_queue, session.block_queue)
        self.assertEqual(new.used_power_ups[PowerUpType.HINT], 1)

    def test_bomb_clears_clipped_neighborhood(self):
        full = Grid.from_lists([[True] * 8 for _ in range(8)])
        session = make_session(grid=full)
        new, _ = self.controller.apply(session, PowerUpType.BOMB, 100.0, CATALOG, target=(0, 0))
        self.assertEqual(new.grid.occupied_count(), 64 - 4)
        self.assertEqual(new.inventory[PowerUpType.BOMB], 0)
        self.assertEqual(new.cooldowns[PowerUpType.BOMB], 160.0)
        self.assertEqual(new.score, session.score)
        self.assertEqual(new.last_snapshot_for_undo, session)
        self.assertEqual(len(bomb_cells(8, (4, 4), 1)), 9)

    def test_bomb_requires_target_inside_grid(self):
        session = make_session()
        with self.assertRaises(GameError) as ctx:
            self.controller.apply(session, PowerUpType.BOMB, 0.0, CATALOG)
        self.assertIs(ctx.exception.kind, ErrorKind.INVALID_ACTION)
        with self.assertRaises(GameError) as ctx:
            self.controller.apply(session, PowerUpType.BOMB, 0.0, CATALOG, target=(9, 9))
        self.assertIs(ctx.exception.kind, ErrorKind.INVALID_PLACEMENT)

    def test_shuffle_regenerates_queue(self):
        session = make_session()
        new, _ = self.controller.apply(session, PowerUpType.SHUFFLE, 0.0, CATALOG)
        self.assertEqual([b.id for b in new.block_queue], ["b2", "b3", "b4"])
        self.assertEqual(new.next_block_serial, 5)
        self.assertEqual(new.grid, session.grid)
        self.assertEqual(new.inventory[PowerUpType.SHUFFLE], 0)

    def test_cooldown_blocks_use_without_consuming(self):
        session = make_session(inventory={PowerUpType.BOMB: 2}, cooldowns={PowerUpType.BOMB: 50.0})
        with self.assertRaises(GameError) as ctx:
            self.controller.apply(session, PowerUpType.BOMB, 10.0, CATALOG, target=(1, 1))
        self.assertIs(ctx.exception.kind, ErrorKind.INSUFFICIENT_POWER_UP)
        self.assertAlmostEqual(self.controller.remaining_cooldown(session, PowerUpType.BOMB, 10.0), 40.0)
        self.assertEqual(session.inventory[PowerUpType.BOMB], 2)
        new, _ = self.controller.apply(session, PowerUpType.BOMB, 50.0, CATALOG, target=(1, 1))
        self.assertEqual(new.inventory[PowerUpType.BOMB], 1)

    def test_prune_cooldowns(self):
        session = make_session(cooldowns={PowerUpType.BOMB: 50.0, PowerUpType.SHUFFLE: 200.0})
        pruned = self.controller.prune_cooldowns(session, 100.0)
        self.assertEqual(dict(pruned.cooldowns), {PowerUpType.SHUFFLE: 200.0})
        self.assertIs(self.controller.prune_cooldowns(pruned, 100.0), pruned)

    def test_empty_inventory_rejected(self):
        session = make_session(inventory={PowerUpType.HINT: 0})
        with self.assertRaises(GameError) as ctx:
            self.controller.apply(session, PowerUpType.HINT, 0.0, CATALOG)
        self.assertIs(ctx.exception.kind, ErrorKind.INSUFFICIENT_POWER_UP)

    def test_undo_restores_previous_state(self):
        previous = make_session()
        current = make_session(grid=previous.grid.with_cells_set([(0, 0)]), score=10,
                               block_queue=previous.block_queue[1:], last_snapshot_for_undo=previous)
        restored = self.controller.undo(current, 0.0)
        self.assertEqual(restored.grid, previous.grid)
        self.assertEqual(restored.score, 0)
        self.assertEqual(restored.block_queue, previous.block_queue)
        self.assertEqual(restored.remaining_undos, 2)
        self.assertIsNone(restored.last_snapshot_for_undo)

    def test_undo_without_snapshot(self):
        with self.assertRaises(GameError) as ctx:
            self.controller.apply(make_session(), PowerUpType.UNDO, 0.0, CATALOG)
        self.assertIs(ctx.exception.kind, ErrorKind.INVALID_ACTION)

    def test_undo_with_no_undos_left(self):
        previous = make_session()
        current = make_session(remaining_undos=0, last_snapshot_for_undo=previous)
        with self.assertRaises(GameError) as ctx:
            self.controller.apply(current, PowerUpType.UNDO, 0.0, CATALOG)
        self.assertIs(ctx.exception.kind, ErrorKind.INSUFFICIENT_POWER_UP)


if __name__ == "__main__":
    unittest.main()
