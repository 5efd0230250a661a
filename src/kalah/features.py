"""
Player-relative feature encoding.

Layout for N pits per player (2N + 3 floats):
- N: mover's pits / MAX_SEEDS_PER_PIT
- N: opponent's pits / MAX_SEEDS_PER_PIT
- 1: mover's store / total seeds
- 1: opponent's store / total seeds
- 1: seeds left on the board / total seeds
"""

import numpy as np

from .game import GameState

MAX_SEEDS_PER_PIT = 20.0


def feature_size(pits_per_player: int) -> int:
    return 2 * pits_per_player + 3


def extract_features(state: GameState) -> np.ndarray:
    """
    Encode a state from the perspective of the player to move.

    Args:
        state: GameState snapshot

    Returns:
        [2N + 3] float32 array
    """
    me = state.current_player
    opp = 1 - me
    total = float(max(state.total_seeds, 1))

    mine = np.asarray(state.side(me), dtype=np.float32) / MAX_SEEDS_PER_PIT
    theirs = np.asarray(state.side(opp), dtype=np.float32) / MAX_SEEDS_PER_PIT
    tail = np.array(
        [state.stores[me] / total, state.stores[opp] / total, sum(state.board) / total],
        dtype=np.float32,
    )
    return np.concatenate([mine, theirs, tail])


def extract_batch(states) -> np.ndarray:
    """Stack features for several states into a [B, F] array."""
    return np.stack([extract_features(s) for s in states], axis=0)
