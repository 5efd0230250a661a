"""
Training loop: self-play, fixed-opponent play, curriculum, checkpointed runs.

Every recorded Experience is labelled from the point of view of the player
who made the move.
"""

import json
import math
from collections import deque
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from tqdm.auto import trange, tqdm

from .agent import QLearningAgent
from .errors import IllegalMoveError
from .eval import EvalResult, evaluate_agent
from .game import DRAW, KalahEngine
from .model import param_norm
from .policies import OpponentPolicy, make_policy, random_policy
from .replay import Experience


@dataclass
class TrainConfig:
    """Training configuration."""

    # Random seed
    seed: int = 0

    # Episodes
    episodes: int = 50_000
    mode: str = "self_play"  # self_play | opponent | curriculum

    # Fixed-opponent play
    opponent: str = "random"  # random | easy | medium | hard
    agent_seat: int = 0

    # Board
    pits_per_player: int = 6
    seeds_per_pit: int = 4

    # Rewards
    intermediate_reward_scale: float = 0.01

    # Learning steps after each episode
    train_steps_per_episode: int = 1

    # Logging
    verbose: bool = True
    log_interval: int = 500

    # Evaluation / checkpoints
    eval_every: int = 1000
    eval_games: int = 100

    # Paths
    save_dir: str = "runs"

    def __post_init__(self):
        if self.mode not in ("self_play", "opponent", "curriculum"):
            raise ValueError(f"unknown mode {self.mode!r}")
        if self.agent_seat not in (0, 1):
            raise ValueError("`agent_seat` must be 0 or 1.")
        if self.train_steps_per_episode < 1:
            raise ValueError("`train_steps_per_episode` must be >= 1.")
        if self.eval_every < 1 or self.eval_games < 1:
            raise ValueError("`eval_every` and `eval_games` must be >= 1.")


@dataclass
class CurriculumStage:
    name: str
    fraction: float
    mode: str  # self_play | opponent
    opponent: Optional[OpponentPolicy] = None
    reset_stats: bool = False


DEFAULT_CURRICULUM = (
    CurriculumStage("Random opponent (warm-up)", 0.3, "opponent"),
    CurriculumStage("Self-play (intermediate)", 0.4, "self_play"),
    CurriculumStage("Self-play (advanced)", 0.3, "self_play"),
)


@dataclass
class TrainingStats:
    """
    Per-run results.

    Wins/losses are counted for player 0 in self-play and for the agent's
    seat against a fixed opponent.
    """
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    total_reward: float = 0.0
    avg_loss: float = 0.0
    loss_updates: int = 0
    recent: deque = field(default_factory=lambda: deque(maxlen=100))

    def reset(self):
        self.games_played = self.wins = self.losses = self.draws = 0
        self.total_reward = 0.0
        self.avg_loss = 0.0
        self.loss_updates = 0
        self.recent.clear()

    def record(self, reward: float, loss: float):
        self.games_played += 1
        if reward > 0:
            self.wins += 1
        elif reward < 0:
            self.losses += 1
        else:
            self.draws += 1
        self.total_reward += reward
        self.recent.append(1 if reward > 0 else 0)
        if loss:
            self.loss_updates += 1
            self.avg_loss += (loss - self.avg_loss) / self.loss_updates

    @property
    def win_rate(self) -> float:
        return self.wins / self.games_played if self.games_played else 0.0

    @property
    def recent_win_rate(self) -> float:
        return sum(self.recent) / len(self.recent) if self.recent else 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "games_played": self.games_played,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "total_reward": self.total_reward,
            "avg_loss": self.avg_loss,
            "win_rate": self.win_rate,
            "recent_win_rate": self.recent_win_rate,
        }


def terminal_reward(engine: KalahEngine, player: int) -> float:
    """+1 / -1 / 0 for `player` in a finished game."""
    winner = engine.winner()
    if winner is DRAW:
        return 0.0
    return 1.0 if winner == player else -1.0


class Trainer:
    """Turns engine transitions into labelled experiences and drives learning."""

    def __init__(self, agent: QLearningAgent, config: Optional[TrainConfig] = None):
        self.agent = agent
        self.config = config or TrainConfig(pits_per_player=agent.pits_per_player)
        if self.config.pits_per_player != agent.pits_per_player:
            raise ValueError("trainer and agent disagree on pits_per_player")

        self.stats = TrainingStats()
        self.history: List[Dict[str, float]] = []
        self.eval_history: List[Tuple[int, float, float]] = []
        self.best_win_rate = -1.0
        self.episode = 0

    def reset_stats(self):
        self.stats.reset()

    def _new_engine(self) -> KalahEngine:
        return KalahEngine(
            pits_per_player=self.config.pits_per_player,
            seeds_per_pit=self.config.seeds_per_pit,
        )

    @staticmethod
    def _play(engine: KalahEngine, action, moves: Sequence[int]):
        if engine.make_move(action) is None:
            raise IllegalMoveError(f"invalid pit {action!r} (valid: {list(moves)})")

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def play_self_play_episode(self) -> Tuple[KalahEngine, List[Experience]]:
        """
        Agent plays both seats.

        Returns:
            (finished engine, experiences in move order)
        """
        engine = self._new_engine()
        scale = self.config.intermediate_reward_scale
        experiences = []

        while not engine.game_over:
            state = engine.get_state()
            moves = engine.valid_moves()
            action = self.agent.select_action(state, moves)
            self._play(engine, action, moves)

            next_state = engine.get_state()
            mover = state.current_player
            done = next_state.game_over
            if done:
                reward = terminal_reward(engine, mover)
            else:
                reward = scale * (next_state.stores[mover] - next_state.stores[1 - mover])
            experiences.append(Experience(state, action, reward, next_state, done))

        return engine, experiences

    def play_opponent_episode(
        self,
        opponent: OpponentPolicy,
        agent_seat: int = 0,
    ) -> Tuple[KalahEngine, List[Experience]]:
        """
        Agent in `agent_seat` against `opponent`; only agent moves are recorded.

        The agent's last experience is relabelled with the terminal reward
        once the game is over, since the opponent may make the final move.
        """
        engine = self._new_engine()
        experiences = []

        while not engine.game_over:
            state = engine.get_state()
            moves = engine.valid_moves()
            if state.current_player == agent_seat:
                action = self.agent.select_action(state, moves)
                self._play(engine, action, moves)
                experiences.append(Experience(state, action, 0.0, engine.get_state(), False))
            else:
                action = opponent(state, moves)
                self._play(engine, action, moves)

        if experiences:
            experiences[-1] = experiences[-1].with_terminal(terminal_reward(engine, agent_seat))

        return engine, experiences

    def _learn_from(self, engine: KalahEngine, experiences: List[Experience],
                    seat: int, mode: str) -> float:
        for exp in experiences:
            self.agent.remember(exp)

        steps = self.config.train_steps_per_episode
        loss = sum(self.agent.learning_step() for _ in range(steps)) / steps

        reward = terminal_reward(engine, seat)
        self.stats.record(reward, loss)
        self.agent.stats.record_episode(reward)

        self.episode += 1
        self.history.append({
            "episode": self.episode,
            "mode": mode,
            "loss": loss,
            "reward": reward,
            "moves": engine.move_number,
            "epsilon": self.agent.epsilon,
            "lr": self.agent.learning_rate,
            "training_step": self.agent.training_step,
            "buffer": len(self.agent.replay_buffer),
        })
        return loss

    def _log_progress(self, episode: int):
        s = self.stats
        tqdm.write(
            f"Episode {episode} | win rate {s.win_rate:.1%} | recent {s.recent_win_rate:.1%} | "
            f"loss {s.avg_loss:.4f} | eps {self.agent.epsilon:.3f} | "
            f"buffer {len(self.agent.replay_buffer)} | |w| {param_norm(self.agent.model.net):.2f}"
        )

    def _run(self, episodes: int, desc: str, play_episode, seat: int, mode: str):
        cfg = self.config
        iterator = trange(episodes, desc=desc, disable=not cfg.verbose, leave=False)
        for i in iterator:
            engine, experiences = play_episode()
            self._learn_from(engine, experiences, seat, mode)
            if cfg.verbose and (i + 1) % cfg.log_interval == 0:
                self._log_progress(i + 1)

    # ------------------------------------------------------------------
    # Training modes
    # ------------------------------------------------------------------

    def train_self_play(self, episodes: int, reset_stats: bool = True) -> TrainingStats:
        """Self-play for `episodes` games, one learning pass after each."""
        if reset_stats:
            self.reset_stats()
        self._run(episodes, "Self-play", self.play_self_play_episode, seat=0, mode="self_play")
        return self.stats

    def train_against_opponent(
        self,
        episodes: int,
        opponent: Optional[OpponentPolicy] = None,
        agent_seat: Optional[int] = None,
        reset_stats: bool = True,
    ) -> TrainingStats:
        """Train the agent in a fixed seat against `opponent` (random by default)."""
        if opponent is None:
            opponent = random_policy
        if agent_seat is None:
            agent_seat = self.config.agent_seat
        if reset_stats:
            self.reset_stats()

        self._run(
            episodes, "Vs opponent",
            lambda: self.play_opponent_episode(opponent, agent_seat),
            seat=agent_seat, mode="opponent",
        )
        return self.stats

    def train_curriculum(
        self,
        episodes: int,
        stages: Optional[Sequence[CurriculumStage]] = None,
    ) -> TrainingStats:
        """Run stages in order with floor(episodes * fraction) games each."""
        if stages is None:
            stages = DEFAULT_CURRICULUM
        self.reset_stats()
        for stage in stages:
            stage_episodes = math.floor(episodes * stage.fraction + 1e-9)
            if self.config.verbose:
                tqdm.write(f"--- Stage: {stage.name} ({stage_episodes} episodes) ---")
            if stage.mode == "self_play":
                self.train_self_play(stage_episodes, reset_stats=stage.reset_stats)
            elif stage.mode == "opponent":
                self.train_against_opponent(stage_episodes, stage.opponent,
                                            reset_stats=stage.reset_stats)
            else:
                raise ValueError(f"unknown curriculum mode {stage.mode!r}")
        return self.stats

    def evaluate(self, games: Optional[int] = None,
                 opponent: Optional[OpponentPolicy] = None) -> EvalResult:
        return evaluate_agent(
            self.agent,
            games=games if games is not None else self.config.eval_games,
            opponent=opponent,
            pits_per_player=self.config.pits_per_player,
            seeds_per_pit=self.config.seeds_per_pit,
        )

    def train_with_checkpoints(
        self,
        episodes: int,
        checkpoint_dir,
        eval_every: Optional[int] = None,
        eval_games: Optional[int] = None,
        opponent: Optional[OpponentPolicy] = None,
        eval_opponent: Optional[OpponentPolicy] = None,
        mode: Optional[str] = None,
    ) -> List[Tuple[int, float, float]]:
        """
        Train in chunks of `eval_every` episodes, evaluating after each.

        Whenever the combined win rate beats the best so far, the agent is
        saved to `<checkpoint_dir>/best` with `best.json` metadata.

        Returns:
            eval history of (training_step, win_rate, epsilon)
        """
        cfg = self.config
        mode = mode or cfg.mode
        if mode not in ("self_play", "opponent"):
            raise ValueError(f"checkpointed runs support self_play or opponent, not {mode!r}")
        eval_every = cfg.eval_every if eval_every is None else eval_every
        if eval_every < 1:
            raise ValueError(f"eval_every must be >= 1, got {eval_every}")
        if eval_games is not None and eval_games < 1:
            raise ValueError(f"eval_games must be >= 1, got {eval_games}")
        ckpt_dir = Path(checkpoint_dir)
        ckpt_dir.mkdir(parents=True, exist_ok=True)
        if opponent is None and mode != "self_play":
            opponent = make_policy(cfg.opponent, seed=cfg.seed)

        self.reset_stats()
        remaining = episodes
        while remaining > 0:
            chunk = min(eval_every, remaining)
            if mode == "self_play":
                self.train_self_play(chunk, reset_stats=False)
            else:
                self.train_against_opponent(chunk, opponent, reset_stats=False)
            remaining -= chunk

            result = self.evaluate(eval_games, eval_opponent)
            win_rate = result.win_rate
            self.eval_history.append((self.agent.training_step, win_rate, self.agent.epsilon))
            if cfg.verbose:
                tqdm.write(
                    f"  Eval @ episode {self.episode}: {win_rate:.1%} W / "
                    f"{result.combined.draw_rate:.1%} D / {result.combined.loss_rate:.1%} L"
                )

            if win_rate > self.best_win_rate:
                self.best_win_rate = win_rate
                self.agent.save(ckpt_dir / "best")
                meta = {
                    "episode": self.episode,
                    "training_step": self.agent.training_step,
                    "win_rate": win_rate,
                    "epsilon": self.agent.epsilon,
                    "evaluation": result.as_dict(),
                }
                with open(ckpt_dir / "best.json", "w") as f:
                    json.dump(meta, f, indent=2)
                if cfg.verbose:
                    tqdm.write(f"  New best ({win_rate:.1%}) saved to {ckpt_dir / 'best'}")

        self.agent.save(ckpt_dir / "final")
        with open(ckpt_dir / "eval_history.json", "w") as f:
            json.dump([list(h) for h in self.eval_history], f, indent=2)

        return self.eval_history

    def config_dict(self) -> Dict[str, object]:
        return {"train": asdict(self.config), "agent": asdict(self.agent.config)}
