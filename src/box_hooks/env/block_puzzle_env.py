from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import gymnasium as gym
from gymnasium import spaces

from box_hooks.game import GameConfig, GameSessionController, ScoringRules, ShapeCatalog


def _compute_action_mask(controller: GameSessionController) -> np.ndarray:
    size = controller.config.grid_size
    k = controller.config.max_active_blocks
    mask = np.zeros((k, size, size), dtype=np.bool_)
    if not controller.session.is_playing:
        return mask
    for slot, _block, row, col in controller.legal_placements():
        if slot < k:
            mask[slot, row, col] = True
    return mask


class BlockPuzzleEnv(gym.Env):
    """Agent-facing view of a ``GameSessionController``.

    Actions are ``(slot, row, col)``: the queue slot of the block to place and
    the grid cell its top-left mask corner lands on.
    """

    metadata = {"render_modes": ["ansi", "rgb_array"], "render_fps": 30}

    def __init__(self, config: Optional[GameConfig] = None, render_mode: Optional[str] = None,
                 rules: Optional[ScoringRules] = None,
                 catalog: Optional[ShapeCatalog] = None,
                 reward_scale: float = 0.01,
                 invalid_action_penalty: float = -0.1,
                 terminal_penalty: float = 0.0,
                 max_episode_steps: int = 1000) -> None:
        super().__init__()
        self.controller = GameSessionController(config, rules=rules, catalog=catalog)
        self.render_mode = render_mode

        self.reward_scale = float(reward_scale)
        self.invalid_action_penalty = float(invalid_action_penalty)
        self.terminal_penalty = float(terminal_penalty)
        self.max_episode_steps = int(max_episode_steps)

        size = self.controller.config.grid_size
        k = self.controller.config.max_active_blocks
        n_shapes = len(self.controller.catalog)

        # Observation space: grid (0/1) and queued shape indices (-1 for empty slots)
        self.observation_space = spaces.Dict(
            {
                "grid": spaces.Box(low=0, high=1, shape=(size, size), dtype=np.int8),
                "pieces": spaces.Box(low=-1, high=n_shapes - 1, shape=(k,), dtype=np.int16),
                "pieces_remaining": spaces.Discrete(k + 1),
            }
        )

        # Action: (slot, row, col)
        self.action_space = spaces.MultiDiscrete((k, size, size))

        self._last_obs: Optional[Dict[str, Any]] = None
        self._steps = 0

    def _get_obs(self) -> Dict[str, Any]:
        k = self.controller.config.max_active_blocks
        session = self.controller.session
        pieces = np.full((k,), -1, dtype=np.int16)
        for i, block in enumerate(session.block_queue[:k]):
            pieces[i] = self.controller.catalog.index_of(block.shape_id)
        return {
            "grid": session.grid.cells.astype(np.int8),
            "pieces": pieces,
            "pieces_remaining": len(session.block_queue),
        }

    def valid_actions(self) -> List[Tuple[int, int, int]]:
        return [(slot, row, col) for slot, _block, row, col in self.controller.legal_placements()]

    def _get_info(self) -> Dict[str, Any]:
        session = self.controller.session
        return {
            "action_mask": _compute_action_mask(self.controller),
            "legal_moves": self.controller.legal_move_count(),
            "score": session.score,
            "lines_cleared": session.lines_cleared,
            "level": session.level,
            "steps": self._steps,
        }

    def reset(self, *, seed: Optional[int] = None,
              options: Optional[dict] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        super().reset(seed=seed)
        if seed is not None:
            self.controller.generator.reseed(seed)
        self.controller.restart()
        self._steps = 0
        obs = self._get_obs()
        self._last_obs = obs
        return obs, self._get_info()

    def step(self, action: np.ndarray | Tuple[int, int, int]):
        slot, row, col = map(int, action)
        queue = self.controller.session.block_queue

        reward_components: Dict[str, float] = {}
        delta = 0
        if 0 <= slot < len(queue):
            result = self.controller.place_block(queue[slot].id, row, col)
        else:
            result = None
        if result is not None and result.accepted:
            delta = result.score_delta.total if result.score_delta is not None else 0
            reward_components["score"] = self.reward_scale * float(delta)
        else:
            reward_components["invalid"] = self.invalid_action_penalty

        self._steps += 1
        terminated = self.controller.session.is_terminal
        truncated = not terminated and self._steps >= self.max_episode_steps
        if terminated:
            reward_components["terminal"] = self.terminal_penalty

        obs = self._get_obs()
        info = self._get_info()
        info["reward_components"] = reward_components
        info["engine_score_delta"] = float(delta)
        if result is not None:
            info["events"] = result.event_tags
        self._last_obs = obs
        return obs, float(sum(reward_components.values())), terminated, truncated, info

    def render(self) -> Optional[Any]:
        grid = self.controller.session.grid
        if self.render_mode == "ansi":
            return grid.render()
        if self.render_mode == "rgb_array":
            cell = 12
            cells = grid.cells
            img = np.zeros((grid.size * cell, grid.size * cell, 3), dtype=np.uint8)
            img[...] = (30, 30, 36)
            for r, c in zip(*np.nonzero(cells)):
                img[r * cell : (r + 1) * cell, c * cell : (c + 1) * cell, :] = (70, 200, 120)
            return img
        return None

    def close(self) -> None:
        pass
