"""
Kalah Q-learning - Train a value-based agent to play Kalah/Mancala.

This package implements the Kalah rules engine and DQN-style self-play
training (epsilon-greedy, experience replay, target network) with a
zero-sum bootstrap that flips sign whenever the turn passes.
"""

from .game import (
    DRAW,
    IN_PROGRESS,
    GameState,
    KalahEngine,
    MoveOutcome,
    default_win_threshold,
    valid_moves_for,
)
from .features import extract_features, feature_size
from .model import FunctionApproximator, MLPApproximator, QNetwork
from .replay import Experience, ReplayBuffer
from .agent import AgentConfig, AgentStats, QLearningAgent, linear_schedule
from .policies import (
    AgentPolicy,
    MinimaxPolicy,
    RandomPolicy,
    make_policy,
    random_policy,
)
from .eval import EvalResult, SeatRecord, evaluate_agent, play_match
from .train import (
    DEFAULT_CURRICULUM,
    CurriculumStage,
    TrainConfig,
    Trainer,
    TrainingStats,
    terminal_reward,
)
from .errors import (
    IllegalMoveError,
    KalahError,
    MalformedModelError,
    ModelNotFoundError,
)

__version__ = "0.1.0"
__all__ = [
    "DRAW",
    "IN_PROGRESS",
    "GameState",
    "KalahEngine",
    "MoveOutcome",
    "default_win_threshold",
    "valid_moves_for",
    "extract_features",
    "feature_size",
    "FunctionApproximator",
    "MLPApproximator",
    "QNetwork",
    "Experience",
    "ReplayBuffer",
    "AgentConfig",
    "AgentStats",
    "QLearningAgent",
    "linear_schedule",
    "AgentPolicy",
    "MinimaxPolicy",
    "RandomPolicy",
    "make_policy",
    "random_policy",
    "EvalResult",
    "SeatRecord",
    "evaluate_agent",
    "play_match",
    "DEFAULT_CURRICULUM",
    "CurriculumStage",
    "TrainConfig",
    "Trainer",
    "TrainingStats",
    "terminal_reward",
    "IllegalMoveError",
    "KalahError",
    "MalformedModelError",
    "ModelNotFoundError",
]
