"""
Evaluation functions.

Plays a frozen (epsilon = 0) agent against a baseline policy, alternating
seats so both starting positions are covered evenly.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from .errors import IllegalMoveError
from .game import DRAW, DEFAULT_PITS_PER_PLAYER, DEFAULT_SEEDS_PER_PIT, KalahEngine
from .policies import OpponentPolicy, random_policy


@dataclass
class SeatRecord:
    """Results for games where the agent sat in one seat (or all seats)."""
    games: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    agent_score_total: float = 0.0
    opponent_score_total: float = 0.0

    def record(self, engine: KalahEngine, agent_seat: int):
        winner = engine.winner()
        self.games += 1
        if winner is DRAW:
            self.draws += 1
        elif winner == agent_seat:
            self.wins += 1
        else:
            self.losses += 1
        self.agent_score_total += engine.score(agent_seat)
        self.opponent_score_total += engine.score(1 - agent_seat)

    def merge(self, other: "SeatRecord") -> "SeatRecord":
        return SeatRecord(
            games=self.games + other.games,
            wins=self.wins + other.wins,
            losses=self.losses + other.losses,
            draws=self.draws + other.draws,
            agent_score_total=self.agent_score_total + other.agent_score_total,
            opponent_score_total=self.opponent_score_total + other.opponent_score_total,
        )

    def _rate(self, count: int) -> float:
        return count / self.games if self.games else 0.0

    @property
    def win_rate(self) -> float:
        return self._rate(self.wins)

    @property
    def loss_rate(self) -> float:
        return self._rate(self.losses)

    @property
    def draw_rate(self) -> float:
        return self._rate(self.draws)

    @property
    def avg_agent_score(self) -> float:
        return self.agent_score_total / self.games if self.games else 0.0

    @property
    def avg_opponent_score(self) -> float:
        return self.opponent_score_total / self.games if self.games else 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "games": self.games,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "win_rate": self.win_rate,
            "loss_rate": self.loss_rate,
            "draw_rate": self.draw_rate,
            "avg_score": self.avg_agent_score,
            "avg_opponent_score": self.avg_opponent_score,
        }


@dataclass
class EvalResult:
    """Per-seat and combined evaluation results."""
    seats: Tuple[SeatRecord, SeatRecord] = field(default_factory=lambda: (SeatRecord(), SeatRecord()))

    @property
    def combined(self) -> SeatRecord:
        return self.seats[0].merge(self.seats[1])

    @property
    def win_rate(self) -> float:
        return self.combined.win_rate

    def as_dict(self) -> Dict[str, object]:
        return {
            **self.combined.as_dict(),
            "seat0": self.seats[0].as_dict(),
            "seat1": self.seats[1].as_dict(),
        }


def play_match(
    first: OpponentPolicy,
    second: OpponentPolicy,
    pits_per_player: int = DEFAULT_PITS_PER_PLAYER,
    seeds_per_pit: int = DEFAULT_SEEDS_PER_PIT,
    engine: Optional[KalahEngine] = None,
) -> KalahEngine:
    """
    Play one game to the end; `first` controls player 0.

    Returns:
        the finished engine
    """
    if engine is None:
        engine = KalahEngine(pits_per_player=pits_per_player, seeds_per_pit=seeds_per_pit)
    policies: Sequence[OpponentPolicy] = (first, second)

    while not engine.game_over:
        state = engine.get_state()
        moves = engine.valid_moves()
        action = policies[state.current_player](state, moves)
        if engine.make_move(action) is None:
            raise IllegalMoveError(
                f"player {state.current_player} chose invalid pit {action!r} (valid: {moves})"
            )

    return engine


def evaluate_agent(
    agent,
    games: int = 100,
    opponent: Optional[OpponentPolicy] = None,
    pits_per_player: int = DEFAULT_PITS_PER_PLAYER,
    seeds_per_pit: int = DEFAULT_SEEDS_PER_PIT,
) -> EvalResult:
    """
    Evaluate agent vs a baseline opponent (random by default).

    The agent plays seat 0 in even games and seat 1 in odd games, with
    exploration disabled for the duration; its epsilon is restored afterwards
    even if a game raises.
    """
    if opponent is None:
        opponent = random_policy

    result = EvalResult()
    with agent.exploration(0.0):
        for g in range(games):
            agent_seat = g % 2
            if agent_seat == 0:
                engine = play_match(agent.select_action, opponent, pits_per_player, seeds_per_pit)
            else:
                engine = play_match(opponent, agent.select_action, pits_per_player, seeds_per_pit)
            result.seats[agent_seat].record(engine, agent_seat)

    return result
