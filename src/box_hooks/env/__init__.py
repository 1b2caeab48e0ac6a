"""Gymnasium environments for Box Hooks."""

from __future__ import annotations

from gymnasium.envs.registration import register

from .block_puzzle_env import BlockPuzzleEnv

# Register default 8x8 environment (slot, row, col actions)
register(
    id="BoxHooks-8x8-v0",
    entry_point="box_hooks.env.block_puzzle_env:BlockPuzzleEnv",
)

__all__ = ["BlockPuzzleEnv"]
