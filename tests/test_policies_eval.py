"""
Tests for opponent policies and agent evaluation.
"""

from unittest import TestCase, main

from kalah.agent import AgentConfig, QLearningAgent
from kalah.errors import IllegalMoveError
from kalah.eval import SeatRecord, evaluate_agent, play_match
from kalah.game import GameState, KalahEngine
from kalah.policies import (
    WIN_SCORE,
    AgentPolicy,
    MinimaxPolicy,
    RandomPolicy,
    evaluate_position,
    make_policy,
    random_policy,
)


def tiny_agent(seed: int = 0) -> QLearningAgent:
    return QLearningAgent(AgentConfig(batch_size=4, replay_buffer_size=50, hidden_sizes=(8,)), seed=seed)


class TestPolicies(TestCase):
    """Random and minimax opponents."""

    def test_random_policy_returns_valid_move(self):
        state = KalahEngine().get_state()
        policy = RandomPolicy(seed=3)
        for _ in range(20):
            self.assertIn(policy(state, [1, 4]), [1, 4])
        self.assertIn(random_policy(state, [2]), [2])

    def test_minimax_takes_winning_move(self):
        # pit 5 reaches 25 in the store, pit 0 does nothing useful
        state = GameState((1, 0, 0, 0, 0, 1, 3, 3, 3, 3, 0, 3), (24, 7), 0)
        policy = MinimaxPolicy(depth=2)
        self.assertEqual(policy(state, [0, 5]), 5)

    def test_minimax_prefers_capture(self):
        state = GameState((1, 0, 2, 0, 0, 0, 3, 3, 3, 3, 9, 3), (10, 10), 0)
        policy = MinimaxPolicy(depth=1)
        self.assertEqual(policy(state, [0, 2]), 0)

    def test_minimax_for_player_one(self):
        state = GameState((3, 0, 3, 3, 3, 3, 1, 0, 2, 0, 0, 0), (10, 10), 1)
        self.assertEqual(MinimaxPolicy(depth=1)(state, [6, 8]), 6)

    def test_evaluate_position_terminal(self):
        won = GameState((0,) * 12, (30, 18), 1, game_over=True)
        self.assertEqual(evaluate_position(won, 0), WIN_SCORE)
        self.assertEqual(evaluate_position(won, 1), -WIN_SCORE)

    def test_difficulties(self):
        self.assertEqual(MinimaxPolicy.from_difficulty("hard").depth, 6)
        self.assertEqual(MinimaxPolicy.from_difficulty("easy").randomness, 0.3)
        self.assertIsInstance(make_policy("random"), RandomPolicy)
        self.assertIsInstance(make_policy("medium"), MinimaxPolicy)
        with self.assertRaises(ValueError):
            make_policy("impossible")
        with self.assertRaises(ValueError):
            MinimaxPolicy(depth=0)

    def test_agent_policy_is_greedy(self):
        agent = tiny_agent()
        agent.epsilon = 1.0
        policy = AgentPolicy(agent)
        state = KalahEngine().get_state()
        moves = list(range(6))

        first = policy(state, moves)
        self.assertTrue(all(policy(state, moves) == first for _ in range(10)))
        self.assertEqual(agent.epsilon, 1.0)


class TestPlayMatch(TestCase):
    """Full games between policies."""

    def test_random_game_finishes(self):
        engine = play_match(RandomPolicy(1), RandomPolicy(2))

        self.assertTrue(engine.game_over)
        self.assertEqual(sum(engine.stores), 48)

    def test_illegal_policy_move_raises(self):
        with self.assertRaises(IllegalMoveError):
            play_match(lambda state, moves: 11, random_policy)

    def test_seat_record(self):
        engine = KalahEngine()
        engine.set_state(GameState((0, 0, 0, 0, 0, 1) + (0,) * 6, (20, 27), 0))
        engine.make_move(5)

        record = SeatRecord()
        record.record(engine, 0)
        record.record(engine, 1)
        self.assertEqual((record.wins, record.losses, record.draws), (1, 1, 0))
        self.assertEqual(record.win_rate, 0.5)
        self.assertEqual(record.as_dict()["games"], 2)


class TestEvaluateAgent(TestCase):
    """Seat alternation and frozen exploration."""

    def test_seat_split(self):
        agent = tiny_agent()
        result = evaluate_agent(agent, games=6, opponent=RandomPolicy(0))

        self.assertEqual(result.seats[0].games, 3)
        self.assertEqual(result.seats[1].games, 3)
        combined = result.combined
        self.assertEqual(combined.games, 6)
        self.assertEqual(combined.wins + combined.losses + combined.draws, 6)
        self.assertAlmostEqual(result.win_rate, combined.wins / 6)
        self.assertIn("seat1", result.as_dict())

    def test_exploration_frozen_during_evaluation(self):
        agent = tiny_agent()
        agent.epsilon = 0.7
        seen = []

        def watcher(state, moves):
            seen.append(agent.epsilon)
            return moves[0]

        evaluate_agent(agent, games=2, opponent=watcher)
        self.assertTrue(seen)
        self.assertTrue(all(eps == 0.0 for eps in seen))
        self.assertEqual(agent.epsilon, 0.7)

    def test_exploration_restored_when_opponent_fails(self):
        agent = tiny_agent()
        agent.epsilon = 0.3

        def broken(state, moves):
            raise RuntimeError("opponent crashed")

        with self.assertRaises(RuntimeError):
            evaluate_agent(agent, games=2, opponent=broken)
        self.assertEqual(agent.epsilon, 0.3)


if __name__ == "__main__":
    main()
