"""
Tests for feature encoding and the replay buffer.
"""

import random
from unittest import TestCase, main

import numpy as np

from kalah.features import MAX_SEEDS_PER_PIT, extract_batch, extract_features, feature_size
from kalah.game import GameState, KalahEngine
from kalah.replay import Experience, ReplayBuffer


class TestFeatures(TestCase):
    """Player-relative encoding."""

    def test_initial_position(self):
        features = extract_features(KalahEngine().get_state())

        self.assertEqual(features.shape, (15,))
        self.assertEqual(features.dtype, np.float32)
        np.testing.assert_allclose(features[:12], 4 / MAX_SEEDS_PER_PIT)
        np.testing.assert_allclose(features[12:], [0.0, 0.0, 1.0])

    def test_halves_swap_with_player_to_move(self):
        board = (1, 2, 3, 4, 5, 6, 0, 0, 0, 0, 0, 1)
        as_p0 = extract_features(GameState(board, (10, 16), 0))
        as_p1 = extract_features(GameState(board, (10, 16), 1))

        np.testing.assert_allclose(as_p0[:6], as_p1[6:12])
        np.testing.assert_allclose(as_p1[:6], [0, 0, 0, 0, 0, 1 / MAX_SEEDS_PER_PIT])
        self.assertAlmostEqual(float(as_p1[12]), 16 / 48, places=6)
        self.assertAlmostEqual(float(as_p1[13]), 10 / 48, places=6)
        self.assertAlmostEqual(float(as_p1[14]), 22 / 48, places=6)

    def test_deterministic(self):
        state = KalahEngine().get_state()
        np.testing.assert_array_equal(extract_features(state), extract_features(state))

    def test_empty_board_has_no_division_by_zero(self):
        features = extract_features(GameState((0,) * 12, (0, 0), 0, game_over=True))
        self.assertTrue(np.all(np.isfinite(features)))

    def test_other_board_sizes(self):
        engine = KalahEngine(pits_per_player=4, seeds_per_pit=3)
        self.assertEqual(feature_size(4), 11)
        self.assertEqual(extract_features(engine.get_state()).shape, (11,))

    def test_batch(self):
        engine = KalahEngine()
        first = engine.get_state()
        engine.make_move(0)
        batch = extract_batch([first, engine.get_state()])

        self.assertEqual(batch.shape, (2, 15))
        np.testing.assert_array_equal(batch[0], extract_features(first))


def make_experience(action: int) -> Experience:
    state = KalahEngine().get_state()
    return Experience(state, action, 0.0, state, False)


class TestReplayBuffer(TestCase):
    """Bounded FIFO with uniform sampling."""

    def test_evicts_oldest(self):
        buffer = ReplayBuffer(max_items=3)
        for action in range(5):
            buffer.add(make_experience(action))

        self.assertEqual(len(buffer), 3)
        self.assertTrue(buffer.is_full())
        self.assertEqual([exp.action for exp in buffer], [2, 3, 4])

    def test_sample_distinct(self):
        buffer = ReplayBuffer(max_items=10, rng=random.Random(0))
        buffer.extend(make_experience(a) for a in range(10))
        batch = buffer.sample(6)

        self.assertEqual(len(batch), 6)
        self.assertEqual(len({exp.action for exp in batch}), 6)

    def test_sample_more_than_stored(self):
        buffer = ReplayBuffer(max_items=10)
        buffer.extend(make_experience(a) for a in range(3))
        self.assertEqual(len(buffer.sample(8)), 3)

    def test_clear_and_capacity(self):
        buffer = ReplayBuffer(max_items=4)
        buffer.add(make_experience(0))
        buffer.clear()

        self.assertEqual(len(buffer), 0)
        self.assertEqual(buffer.capacity, 4)
        with self.assertRaises(ValueError):
            ReplayBuffer(max_items=0)

    def test_with_terminal(self):
        exp = make_experience(1)
        final = exp.with_terminal(-1)

        self.assertTrue(final.done)
        self.assertEqual(final.reward, -1.0)
        self.assertFalse(exp.done)
        self.assertEqual(final.action, 1)


if __name__ == "__main__":
    main()
