"""
Kalah game rules and state management.

Board representation: tuple/list[int] of length 2N (N pits per player)
  - pits 0..N-1 belong to player 0
  - pits N..2N-1 belong to player 1

Sowing runs counter-clockwise (increasing index, wrapping at 2N). Stores are
not ring positions: a player's store sits between their last pit and the
opponent's first pit, and only the mover's own store receives seeds.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Winner sentinels
IN_PROGRESS = -1
DRAW = None

DEFAULT_PITS_PER_PLAYER = 6
DEFAULT_SEEDS_PER_PIT = 4


@dataclass(frozen=True)
class GameState:
    """Read-only snapshot of a game."""
    board: Tuple[int, ...]
    stores: Tuple[int, int]
    current_player: int  # 0 or 1
    game_over: bool = False
    move_number: int = 0

    @property
    def pits_per_player(self) -> int:
        return len(self.board) // 2

    @property
    def total_seeds(self) -> int:
        """Conserved seed count (board plus both stores)."""
        return sum(self.board) + self.stores[0] + self.stores[1]

    def side(self, player: int) -> Tuple[int, ...]:
        """Pit counts on `player`'s half of the board."""
        n = self.pits_per_player
        return self.board[player * n:(player + 1) * n]


@dataclass(frozen=True)
class MoveOutcome:
    """Record of a single move, as returned by `KalahEngine.make_move`."""
    pit: int
    player: int
    move_number: int
    seeds_sown: int
    captured: int = 0
    extra_turn: bool = False
    game_ended: bool = False
    # pit indices, or "store-<player>" for a store deposit
    sowing_path: Tuple[Union[int, str], ...] = ()


def default_win_threshold(total_seeds: int) -> int:
    """Store total that decides the game outright (25 for 6 pits x 4 seeds)."""
    return total_seeds // 2 + 1


def valid_moves_for(state: GameState) -> List[int]:
    """Return own-side non-empty pits of the player to move in `state`."""
    if state.game_over:
        return []
    n = state.pits_per_player
    start = state.current_player * n
    return [i for i in range(start, start + n) if state.board[i] > 0]


class KalahEngine:
    """
    Owns one mutable game and runs the sowing/capture/turn-switch rules.

    Callers only ever see `GameState` snapshots, so a snapshot taken before a
    move is never changed by it.
    """

    def __init__(
        self,
        pits_per_player: int = DEFAULT_PITS_PER_PLAYER,
        seeds_per_pit: int = DEFAULT_SEEDS_PER_PIT,
        win_threshold: Optional[int] = None,
        enable_logging: bool = False,
    ):
        if pits_per_player < 1:
            raise ValueError("pits_per_player must be >= 1")
        if seeds_per_pit < 0:
            raise ValueError("seeds_per_pit must be >= 0")

        self.pits_per_player = pits_per_player
        self.total_pits = 2 * pits_per_player
        self.seeds_per_pit = seeds_per_pit
        self.total_seeds = self.total_pits * seeds_per_pit
        # None means "derive from total_seeds", also after reset(seeds_per_pit=...)
        self._fixed_threshold = win_threshold
        self.win_threshold = (
            win_threshold if win_threshold is not None
            else default_win_threshold(self.total_seeds)
        )
        self.enable_logging = enable_logging
        self.reset()

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def reset(self, seeds_per_pit: Optional[int] = None) -> None:
        """Reset to the initial position."""
        if seeds_per_pit is not None:
            self.seeds_per_pit = seeds_per_pit
            self.total_seeds = self.total_pits * seeds_per_pit
            if self._fixed_threshold is None:
                self.win_threshold = default_win_threshold(self.total_seeds)
        self.board: List[int] = [self.seeds_per_pit] * self.total_pits
        self.stores: List[int] = [0, 0]
        self.current_player = 0
        self.game_over = False
        self.move_number = 0

    def get_state(self) -> GameState:
        return GameState(
            board=tuple(self.board),
            stores=(self.stores[0], self.stores[1]),
            current_player=self.current_player,
            game_over=self.game_over,
            move_number=self.move_number,
        )

    def set_state(self, state: GameState) -> None:
        """Restore a snapshot (copied in, never aliased)."""
        if len(state.board) != self.total_pits:
            raise ValueError(
                f"board has {len(state.board)} pits, engine expects {self.total_pits}"
            )
        if any(v < 0 for v in state.board) or any(v < 0 for v in state.stores):
            raise ValueError("seed counts must be non-negative")
        if state.current_player not in (0, 1):
            raise ValueError(f"current_player must be 0 or 1, got {state.current_player}")

        self.board = list(state.board)
        self.stores = list(state.stores)
        self.current_player = state.current_player
        self.game_over = state.game_over
        self.move_number = state.move_number

    @property
    def state(self) -> GameState:
        return self.get_state()

    def clone(self) -> "KalahEngine":
        """Independent engine with an identical position."""
        cloned = KalahEngine(
            pits_per_player=self.pits_per_player,
            seeds_per_pit=self.seeds_per_pit,
            win_threshold=self.win_threshold,
            enable_logging=False,
        )
        cloned._fixed_threshold = self._fixed_threshold
        cloned.set_state(self.get_state())
        return cloned

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def own_pits(self, player: int) -> range:
        start = player * self.pits_per_player
        return range(start, start + self.pits_per_player)

    def valid_moves(self, state: Optional[GameState] = None) -> List[int]:
        """Valid pit indices for the player to move (of `state` if given)."""
        if state is not None:
            return valid_moves_for(state)
        if self.game_over:
            return []
        return [i for i in self.own_pits(self.current_player) if self.board[i] > 0]

    def is_valid_move(self, pit: int) -> bool:
        if self.game_over:
            return False
        if pit not in self.own_pits(self.current_player):
            return False
        return self.board[pit] > 0

    def make_move(self, pit: int) -> Optional[MoveOutcome]:
        """
        Play `pit` for the current player.

        Returns:
            MoveOutcome, or None (state untouched) if the move is invalid.
        """
        if not self.is_valid_move(pit):
            return None

        player = self.current_player
        own = self.own_pits(player)
        # Ring position right after the mover's last pit
        store_boundary = (player + 1) * self.pits_per_player % self.total_pits

        self.move_number += 1
        seeds = self.board[pit]
        seeds_sown = seeds
        self.board[pit] = 0
        self._trace("move #%d: player %d plays pit %d (%d seeds)",
                    self.move_number, player, pit, seeds)

        path: List[Union[int, str]] = []
        position = pit
        first_lap = True
        landed_in_store = False
        landed_in_empty_own_pit = False

        while seeds > 0:
            position = (position + 1) % self.total_pits

            if position == pit and first_lap:
                first_lap = False
                self._trace("  skip origin pit %d", pit)
                continue

            if position == store_boundary:
                self.stores[player] += 1
                seeds -= 1
                path.append(f"store-{player}")
                self._trace("  seed -> store %d (now %d)", player, self.stores[player])
                if seeds == 0:
                    landed_in_store = True
                    break

            was_empty = self.board[position] == 0
            self.board[position] += 1
            seeds -= 1
            path.append(position)
            self._trace("  seed -> pit %d (now %d)", position, self.board[position])

            if seeds == 0 and was_empty and position in own:
                landed_in_empty_own_pit = True

        captured = 0
        if landed_in_empty_own_pit:
            opposite = self.total_pits - 1 - position
            if self.board[opposite] > 0:
                captured = self.board[opposite] + self.board[position]
                self._trace("  capture pit %d + opposite pit %d = %d",
                            position, opposite, captured)
                self.stores[player] += captured
                self.board[opposite] = 0
                self.board[position] = 0

        game_ended = self._check_game_over()

        if not landed_in_store:
            self.current_player = 1 - player
            self._trace("  turn -> player %d", self.current_player)
        else:
            self._trace("  extra turn for player %d", player)

        if game_ended:
            self._trace("game over: stores %s", self.stores)

        return MoveOutcome(
            pit=pit,
            player=player,
            move_number=self.move_number,
            seeds_sown=seeds_sown,
            captured=captured,
            extra_turn=landed_in_store,
            game_ended=game_ended,
            sowing_path=tuple(path),
        )

    def _check_game_over(self) -> bool:
        """Move to the terminal state if a store hits the threshold or a side is empty."""
        n = self.pits_per_player
        side0 = sum(self.board[:n])
        side1 = sum(self.board[n:])

        reached_threshold = max(self.stores) >= self.win_threshold
        if not (reached_threshold or side0 == 0 or side1 == 0):
            return False

        self.game_over = True
        self.stores[0] += side0
        self.stores[1] += side1
        self.board = [0] * self.total_pits
        return True

    def winner(self) -> Optional[int]:
        """
        Returns:
            IN_PROGRESS (-1) while playing, 0 or 1 for the winner, DRAW (None) on a tie.
        """
        if not self.game_over:
            return IN_PROGRESS
        if self.stores[0] > self.stores[1]:
            return 0
        if self.stores[1] > self.stores[0]:
            return 1
        return DRAW

    def score(self, player: int) -> int:
        return self.stores[player]

    def score_difference(self) -> int:
        """Current player's store minus the opponent's."""
        return self.stores[self.current_player] - self.stores[1 - self.current_player]

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def render(self) -> str:
        """Text board: player 1 on top (right to left), player 0 below."""
        n = self.pits_per_player
        lines = ["=" * 60,
                 f"Move #{self.move_number} - Player {self.current_player}'s turn",
                 "=" * 60]

        top = " ".join(f"[{i}:{self.board[i]}]" for i in reversed(range(n, self.total_pits)))
        bottom = " ".join(f"[{i}:{self.board[i]}]" for i in range(n))
        lines.append(f"Player 1: {top}")
        lines.append(f"P1 Store: {self.stores[1]}{' ' * 40}P0 Store: {self.stores[0]}")
        lines.append(f"Player 0: {bottom}")
        lines.append("=" * 60)

        if self.game_over:
            w = self.winner()
            if w is DRAW:
                lines.append(f"GAME OVER - Draw! ({self.stores[0]} each)")
            else:
                lines.append(f"GAME OVER - Player {w} wins! "
                             f"({self.stores[w]} vs {self.stores[1 - w]})")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()

    def _trace(self, msg: str, *args) -> None:
        if self.enable_logging:
            logger.debug(msg, *args)
