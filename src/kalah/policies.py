"""
Move-choosing policies.

Every opponent is a callable `(state, valid_moves) -> pit` that returns a
member of `valid_moves`: random play, alpha-beta minimax on engine clones, or
a learned agent.
"""

import random
from typing import Callable, Optional, Sequence

from .game import GameState, KalahEngine, default_win_threshold

OpponentPolicy = Callable[[GameState, Sequence[int]], int]

# depth / chance of a random move, per difficulty
DIFFICULTY = {
    "easy": {"depth": 2, "randomness": 0.3},
    "medium": {"depth": 4, "randomness": 0.1},
    "hard": {"depth": 6, "randomness": 0.0},
}

WIN_SCORE = 1000.0


class RandomPolicy:
    """Uniformly random valid move."""

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def __call__(self, state: GameState, valid_moves: Sequence[int]) -> int:
        return self.rng.choice(list(valid_moves))


def random_policy(state: GameState, valid_moves: Sequence[int]) -> int:
    """Default opponent: uniformly random valid move."""
    return random.choice(list(valid_moves))


def evaluate_position(state: GameState, player: int) -> float:
    """
    Heuristic value of `state` for `player`.

    Terminal positions score +/-WIN_SCORE (0 on a draw). Otherwise store
    difference dominates, with small terms for seeds kept on our side and
    opponent seeds sitting opposite our empty pits (capture chances).
    """
    opp = 1 - player
    if state.game_over:
        if state.stores[player] > state.stores[opp]:
            return WIN_SCORE
        if state.stores[player] < state.stores[opp]:
            return -WIN_SCORE
        return 0.0

    n = state.pits_per_player
    total_pits = 2 * n
    score_diff = state.stores[player] - state.stores[opp]
    ours = sum(state.side(player))
    theirs = sum(state.side(opp))

    capture_value = 0.0
    for i in range(player * n, (player + 1) * n):
        if state.board[i] == 0:
            capture_value += state.board[total_pits - 1 - i] * 0.5

    return score_diff * 10 + (ours - theirs) * 0.5 + capture_value


def alphabeta(engine: KalahEngine, depth: int, alpha: float, beta: float, player: int) -> float:
    """
    Minimax value of `engine`'s position for `player` with alpha-beta pruning.

    The side to move decides max/min, so extra turns keep the same role.
    """
    if depth == 0 or engine.game_over:
        return evaluate_position(engine.get_state(), player)

    maximizing = engine.current_player == player
    best = -float("inf") if maximizing else float("inf")

    for move in engine.valid_moves():
        child = engine.clone()
        child.make_move(move)
        score = alphabeta(child, depth - 1, alpha, beta, player)
        if maximizing:
            best = max(best, score)
            alpha = max(alpha, score)
        else:
            best = min(best, score)
            beta = min(beta, score)
        if beta <= alpha:
            break

    return best


class MinimaxPolicy:
    """Depth-limited alpha-beta search with an optional random-move rate."""

    def __init__(
        self,
        depth: int = 4,
        randomness: float = 0.0,
        seed: Optional[int] = None,
        win_threshold: Optional[int] = None,
    ):
        if depth < 1:
            raise ValueError("depth must be >= 1")
        self.depth = depth
        self.randomness = randomness
        self.win_threshold = win_threshold
        self.rng = random.Random(seed)

    @classmethod
    def from_difficulty(cls, difficulty: str = "medium", seed: Optional[int] = None) -> "MinimaxPolicy":
        try:
            settings = DIFFICULTY[difficulty]
        except KeyError:
            raise ValueError(
                f"unknown difficulty {difficulty!r}; expected one of {sorted(DIFFICULTY)}"
            ) from None
        return cls(depth=settings["depth"], randomness=settings["randomness"], seed=seed)

    def _engine_for(self, state: GameState) -> KalahEngine:
        threshold = self.win_threshold
        if threshold is None:
            threshold = default_win_threshold(state.total_seeds)
        engine = KalahEngine(
            pits_per_player=state.pits_per_player,
            seeds_per_pit=0,
            win_threshold=threshold,
        )
        engine.set_state(state)
        return engine

    def __call__(self, state: GameState, valid_moves: Sequence[int]) -> int:
        moves = list(valid_moves)
        if self.randomness > 0 and self.rng.random() < self.randomness:
            return self.rng.choice(moves)

        root = self._engine_for(state)
        player = state.current_player

        best_move = moves[0]
        best_score = -float("inf")
        for move in moves:
            child = root.clone()
            child.make_move(move)
            score = alphabeta(child, self.depth - 1, -float("inf"), float("inf"), player)
            if score > best_score:
                best_score = score
                best_move = move
        return best_move


class AgentPolicy:
    """Use a learned agent as an opponent (greedy by default)."""

    def __init__(self, agent, greedy: bool = True):
        self.agent = agent
        self.greedy = greedy

    def __call__(self, state: GameState, valid_moves: Sequence[int]) -> int:
        if self.greedy:
            with self.agent.exploration(0.0):
                return self.agent.select_action(state, valid_moves)
        return self.agent.select_action(state, valid_moves)


def make_policy(name: str, seed: Optional[int] = None) -> OpponentPolicy:
    """Build an opponent by name: "random" or a minimax difficulty."""
    if name == "random":
        return RandomPolicy(seed)
    return MinimaxPolicy.from_difficulty(name, seed=seed)
