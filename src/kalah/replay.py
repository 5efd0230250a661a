"""
Experience replay buffer.

Stores transitions: (state, action, reward, next_state, done)
"""

import random
from collections import deque
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from .game import GameState


@dataclass(frozen=True)
class Experience:
    """One transition from the mover's point of view."""
    state: GameState        # before the move
    action: int             # absolute pit index
    reward: float
    next_state: GameState   # may belong to either player (extra turns)
    done: bool

    def with_terminal(self, reward: float) -> "Experience":
        """Copy with the terminal reward written in and done forced true."""
        return replace(self, reward=float(reward), done=True)


class ReplayBuffer:
    """
    Bounded FIFO of experiences with uniform sampling.

    Once full, each add evicts the oldest entry.
    """

    def __init__(self, max_items: int = 100_000, rng: Optional[random.Random] = None):
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.buf = deque(maxlen=max_items)
        self.rng = rng or random

    def __len__(self) -> int:
        return len(self.buf)

    def __iter__(self):
        return iter(self.buf)

    @property
    def capacity(self) -> int:
        return self.buf.maxlen

    def add(self, experience: Experience):
        """Add a transition."""
        self.buf.append(experience)

    def extend(self, experiences: Iterable[Experience]):
        for exp in experiences:
            self.add(exp)

    def sample(self, batch_size: int) -> List[Experience]:
        """Sample `batch_size` distinct experiences (fewer if the buffer is smaller)."""
        batch_size = min(batch_size, len(self.buf))
        return self.rng.sample(self.buf, batch_size)

    def is_full(self) -> bool:
        """Check if buffer is at capacity."""
        return len(self.buf) == self.buf.maxlen

    def clear(self):
        self.buf.clear()
