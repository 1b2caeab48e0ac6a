from __future__ import annotations

import argparse
import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import gymnasium as gym

import box_hooks.env  # ensure registration


def play_game(env: gym.Env, rng: np.random.Generator, seed: Optional[int] = None) -> Dict[str, float]:
    obs, info = env.reset(seed=seed)
    total_reward = 0.0
    steps = 0
    while True:
        # Prefer valid actions if available
        valid = np.argwhere(info["action_mask"])
        if len(valid):
            action = valid[int(rng.integers(len(valid)))]
        else:
            action = env.action_space.sample()
        obs, reward, terminated, truncated, info = env.step(action)
        total_reward += float(reward)
        steps += 1
        if terminated or truncated:
            break
    return {
        "score": float(info["score"]),
        "lines": float(info["lines_cleared"]),
        "level": float(info["level"]),
        "steps": float(steps),
        "reward": total_reward,
    }


def run_random(games: int = 10, seed: Optional[int] = None, max_steps: int = 1000) -> List[Dict[str, float]]:
    env = gym.make("BoxHooks-8x8-v0", max_episode_steps=max_steps)
    rng = np.random.default_rng(seed)
    results = []
    try:
        for i in range(games):
            game_seed = None if seed is None else seed + i
            results.append(play_game(env, rng, game_seed))
    finally:
        env.close()
    return results


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Play random Box Hooks games and print summary statistics")
    p.add_argument("--games", type=int, default=10)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--max-steps", type=int, default=1000)
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    results = run_random(args.games, args.seed, args.max_steps)
    if not results:
        print("No games played")
        return
    scores = np.array([r["score"] for r in results])
    lines = np.array([r["lines"] for r in results])
    steps = np.array([r["steps"] for r in results])
    print(f"Games played: {len(results)}")
    print(f"Score  mean {scores.mean():.1f}  max {scores.max():.0f}  min {scores.min():.0f}")
    print(f"Lines  mean {lines.mean():.1f}  max {lines.max():.0f}")
    print(f"Moves  mean {steps.mean():.1f}")


if __name__ == "__main__":  # pragma: no cover
    main()
