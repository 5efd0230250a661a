"""
Q-learning agent for Kalah.

Epsilon-greedy action selection, experience replay and an online/target
approximator pair. Values are always from the point of view of the player to
move, so a bootstrapped value is negated whenever the turn passes to the
opponent.
"""

import logging
import os
import pickle
import random
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch

from .errors import MalformedModelError, ModelNotFoundError
from .features import extract_batch, extract_features, feature_size
from .game import GameState
from .model import DEFAULT_HIDDEN_SIZES, MLPApproximator
from .replay import Experience, ReplayBuffer

logger = logging.getLogger(__name__)

MODEL_FILENAME = "model.pt"
FORMAT_VERSION = 1


@dataclass
class AgentConfig:
    """Agent hyperparameters."""

    # Learning rate, decayed linearly over epsilon_decay_steps
    learning_rate: float = 1e-3
    learning_rate_end: float = 5e-4

    # Discount
    gamma: float = 0.99

    # Exploration
    epsilon: float = 1.0
    epsilon_min: float = 0.05
    epsilon_decay_steps: int = 50_000

    # Replay
    replay_buffer_size: int = 100_000
    batch_size: int = 64

    # Target network sync interval (training steps)
    target_update_freq: int = 1000

    # Gradient norm clip
    gradient_clip: float = 1.0

    # Board / network shape
    pits_per_player: int = 6
    hidden_sizes: Tuple[int, ...] = DEFAULT_HIDDEN_SIZES

    def __post_init__(self):
        self.hidden_sizes = tuple(int(h) for h in self.hidden_sizes)
        if not 0.0 <= self.gamma <= 1.0:
            raise ValueError("`gamma` must be in [0, 1].")
        if not 0.0 <= self.epsilon_min <= self.epsilon <= 1.0:
            raise ValueError("need 0 <= `epsilon_min` <= `epsilon` <= 1.")
        if self.learning_rate <= 0 or self.learning_rate_end <= 0:
            raise ValueError("learning rates must be positive.")
        if self.batch_size < 1 or self.replay_buffer_size < self.batch_size:
            raise ValueError("need 1 <= `batch_size` <= `replay_buffer_size`.")
        if self.target_update_freq < 1:
            raise ValueError("`target_update_freq` must be >= 1.")
        if self.epsilon_decay_steps < 0:
            raise ValueError("`epsilon_decay_steps` must be >= 0.")


@dataclass
class AgentStats:
    """Cumulative statistics persisted with the model."""
    episode_count: int = 0
    total_reward: float = 0.0
    avg_loss: float = 0.0
    loss_updates: int = 0

    def record_loss(self, loss: float):
        self.loss_updates += 1
        self.avg_loss += (loss - self.avg_loss) / self.loss_updates

    def record_episode(self, reward: float):
        self.episode_count += 1
        self.total_reward += reward


def linear_schedule(start: float, end: float, step: int, horizon: int) -> float:
    """Linear interpolation from start to end over `horizon` steps, then flat."""
    if horizon <= 0:
        return end
    progress = min(1.0, step / horizon)
    return start + progress * (end - start)


class QLearningAgent:
    """
    DQN-style agent with a periodically synced target approximator.

    The approximator outputs one value per own-side pit (relative index
    0..N-1); absolute pit indices are mapped with the mover's offset.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        seed: Optional[int] = None,
        device: Optional[torch.device] = None,
    ):
        self.config = config or AgentConfig()
        self.device = device or torch.device("cpu")
        self.rng = random.Random(seed)
        if seed is not None:
            torch.manual_seed(seed)

        self.learning_rate = self.config.learning_rate
        self.epsilon = self.config.epsilon
        self.training_step = 0

        self.replay_buffer = ReplayBuffer(self.config.replay_buffer_size, rng=self.rng)
        self.model = self._build_approximator()
        self.target_model = self._build_approximator()
        self.sync_target_network()

        self.stats = AgentStats()

    @property
    def pits_per_player(self) -> int:
        return self.config.pits_per_player

    def _build_approximator(self) -> MLPApproximator:
        n = self.config.pits_per_player
        return MLPApproximator(
            input_size=feature_size(n),
            output_size=n,
            hidden_sizes=self.config.hidden_sizes,
            learning_rate=self.learning_rate,
            device=self.device,
        )

    def sync_target_network(self):
        """Copy online weights into the target approximator."""
        self.target_model.set_weights(self.model.get_weights())

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def q_values(self, state: GameState) -> np.ndarray:
        """Online Q-values for the mover's N pits (relative indices)."""
        return self.model.predict(extract_features(state))

    def target_q_values(self, state: GameState) -> np.ndarray:
        return self.target_model.predict(extract_features(state))

    def select_action(self, state: GameState, valid_moves: Sequence[int]) -> Optional[int]:
        """
        Epsilon-greedy choice among `valid_moves` (absolute pit indices).

        Returns:
            chosen pit, or None if there is nothing to play
        """
        if not valid_moves:
            return None

        if self.rng.random() < self.epsilon:
            return self.rng.choice(list(valid_moves))

        q = self.q_values(state)
        n = self.pits_per_player
        offset = state.current_player * n

        best_action = None
        best_q = -float("inf")
        for move in valid_moves:
            rel = move - offset
            if 0 <= rel < n and q[rel] > best_q:
                best_q = q[rel]
                best_action = move

        return best_action if best_action is not None else valid_moves[0]

    @contextmanager
    def exploration(self, epsilon: float) -> Iterator["QLearningAgent"]:
        """Temporarily override epsilon; the previous value is always restored."""
        saved = self.epsilon
        self.epsilon = epsilon
        try:
            yield self
        finally:
            self.epsilon = saved

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def remember(self, experience: Experience):
        """Store a transition, evicting the oldest one on overflow."""
        self.replay_buffer.add(experience)

    def _update_schedules(self):
        cfg = self.config
        self.learning_rate = linear_schedule(
            cfg.learning_rate, cfg.learning_rate_end,
            self.training_step, cfg.epsilon_decay_steps,
        )
        self.epsilon = max(cfg.epsilon_min, linear_schedule(
            cfg.epsilon, cfg.epsilon_min,
            self.training_step, cfg.epsilon_decay_steps,
        ))

    def compute_targets(self, batch: List[Experience]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Build regression targets for a batch.

        Only the taken action's entry is replaced; the others keep the online
        prediction so they contribute no error.

        Returns:
            features: [B, F]
            targets: [B, N]
        """
        n = self.pits_per_player
        gamma = self.config.gamma

        features = extract_batch([exp.state for exp in batch])
        targets = np.array(self.model.predict_batch(features), dtype=np.float32, copy=True)

        pending = [i for i, exp in enumerate(batch) if not exp.done]
        next_max = {}
        if pending:
            next_q = self.target_model.predict_batch(
                extract_batch([batch[i].next_state for i in pending])
            )
            next_max = {i: float(np.max(q)) for i, q in zip(pending, next_q)}

        for i, exp in enumerate(batch):
            if exp.done:
                target = exp.reward
            else:
                next_value = next_max[i]
                # Zero-sum: the opponent's best value is our worst
                if exp.next_state.current_player != exp.state.current_player:
                    next_value = -next_value
                target = exp.reward + gamma * next_value

            rel = exp.action - exp.state.current_player * n
            targets[i, rel] = target

        return features, targets

    def learning_step(self) -> float:
        """
        One DQN update from a sampled batch.

        Returns:
            batch loss, or 0.0 if the buffer holds fewer than batch_size items
        """
        cfg = self.config
        if len(self.replay_buffer) < cfg.batch_size:
            return 0.0

        self.training_step += 1
        self._update_schedules()

        batch = self.replay_buffer.sample(cfg.batch_size)
        features, targets = self.compute_targets(batch)
        loss = self.model.fit_batch(features, targets, self.learning_rate, cfg.gradient_clip)

        if self.training_step % cfg.target_update_freq == 0:
            self.sync_target_network()

        self.stats.record_loss(loss)
        return loss

    replay = learning_step

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Union[str, os.PathLike]) -> Path:
        """Write `<path>/model.pt` and return its location."""
        out_dir = Path(path)
        out_dir.mkdir(parents=True, exist_ok=True)

        payload = {
            "format_version": FORMAT_VERSION,
            **self.model.to_serializable(),
            "hyperparameters": {
                **asdict(self.config),
                "current_learning_rate": self.learning_rate,
                "current_epsilon": self.epsilon,
                "training_step": self.training_step,
            },
            "stats": asdict(self.stats),
        }
        model_path = out_dir / MODEL_FILENAME
        torch.save(payload, model_path)
        logger.info("Model saved to %s", model_path)
        return model_path

    def load(self, path: Union[str, os.PathLike]):
        """
        Restore a saved agent in place and resync the target approximator.

        Raises:
            ModelNotFoundError: nothing saved at `path`
            MalformedModelError: the file is unreadable or has the wrong schema
        """
        model_path = Path(path)
        if model_path.is_dir() or not model_path.suffix:
            model_path = model_path / MODEL_FILENAME
        if not model_path.exists():
            raise ModelNotFoundError(f"Model not found at {model_path}")

        try:
            payload = torch.load(model_path, map_location="cpu")
        except (RuntimeError, EOFError, ValueError, pickle.UnpicklingError) as e:
            raise MalformedModelError(f"cannot read {model_path}: {e}") from e

        if not isinstance(payload, dict):
            raise MalformedModelError(f"{model_path} does not hold a model dict")
        if payload.get("format_version") != FORMAT_VERSION:
            raise MalformedModelError(
                f"unsupported format_version {payload.get('format_version')!r}"
            )

        hyper = payload.get("hyperparameters") or {}
        stats = payload.get("stats") or {}
        if not isinstance(hyper, dict) or not isinstance(stats, dict):
            raise MalformedModelError("`hyperparameters` and `stats` must be dicts")
        known = {f.name for f in fields(AgentConfig)}
        try:
            config = AgentConfig(**{k: v for k, v in hyper.items() if k in known})
            training_step = int(hyper.get("training_step", 0))
            learning_rate = float(hyper.get("current_learning_rate", config.learning_rate))
            epsilon = float(hyper.get("current_epsilon", config.epsilon))
            agent_stats = AgentStats(**{k: v for k, v in stats.items()
                                        if k in {f.name for f in fields(AgentStats)}})
        except (TypeError, ValueError) as e:
            raise MalformedModelError(f"bad hyperparameters: {e}") from e

        model = MLPApproximator.from_serializable(payload, learning_rate, self.device)
        if (model.input_size != feature_size(config.pits_per_player)
                or model.output_size != config.pits_per_player):
            raise MalformedModelError("topology does not match pits_per_player")
        if model.net.hidden_sizes != config.hidden_sizes:
            raise MalformedModelError(
                f"topology hidden sizes {model.net.hidden_sizes} do not match "
                f"hyperparameters {config.hidden_sizes}"
            )
        target_model = MLPApproximator(
            input_size=model.input_size,
            output_size=model.output_size,
            hidden_sizes=config.hidden_sizes,
            learning_rate=learning_rate,
            device=self.device,
        )
        target_model.set_weights(model.get_weights())

        # Nothing is assigned until the whole file has been validated
        self.config = config
        self.training_step = training_step
        self.learning_rate = learning_rate
        self.epsilon = epsilon
        self.model = model
        self.target_model = target_model
        self.stats = agent_stats

        if self.replay_buffer.capacity != config.replay_buffer_size:
            old = list(self.replay_buffer)
            self.replay_buffer = ReplayBuffer(config.replay_buffer_size, rng=self.rng)
            self.replay_buffer.extend(old)

        logger.info("Model loaded from %s (step %d)", model_path, self.training_step)

    @classmethod
    def from_checkpoint(cls, path: Union[str, os.PathLike],
                        device: Optional[torch.device] = None,
                        seed: Optional[int] = None) -> "QLearningAgent":
        agent = cls(device=device, seed=seed)
        agent.load(path)
        return agent

    def get_stats(self) -> Dict[str, float]:
        return {
            **asdict(self.stats),
            "epsilon": self.epsilon,
            "learning_rate": self.learning_rate,
            "training_step": self.training_step,
            "buffer_size": len(self.replay_buffer),
        }
