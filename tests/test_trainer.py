"""
Tests for the training loop.

Episodes are short and networks tiny; these check bookkeeping and labelling,
not learning quality.
"""

import json
import tempfile
from pathlib import Path
from unittest import TestCase, main

from kalah.agent import MODEL_FILENAME, AgentConfig, QLearningAgent
from kalah.errors import IllegalMoveError
from kalah.policies import RandomPolicy
from kalah.train import CurriculumStage, TrainConfig, Trainer, terminal_reward


def make_trainer(**overrides) -> Trainer:
    agent = QLearningAgent(
        AgentConfig(batch_size=4, replay_buffer_size=200, hidden_sizes=(8,), epsilon_decay_steps=50),
        seed=0,
    )
    params = dict(verbose=False, eval_games=2, eval_every=3)
    params.update(overrides)
    return Trainer(agent, TrainConfig(**params))


class TestEpisodes(TestCase):
    """Experience labelling."""

    def test_self_play_labels_are_mover_relative(self):
        trainer = make_trainer()
        engine, experiences = trainer.play_self_play_episode()

        self.assertTrue(engine.game_over)
        self.assertEqual(len(experiences), engine.move_number)

        last = experiences[-1]
        self.assertTrue(last.done)
        self.assertEqual(last.reward, terminal_reward(engine, last.state.current_player))

        for exp, following in zip(experiences, experiences[1:]):
            self.assertFalse(exp.done)
            self.assertEqual(exp.next_state, following.state)
            mover = exp.state.current_player
            expected = 0.01 * (exp.next_state.stores[mover] - exp.next_state.stores[1 - mover])
            self.assertAlmostEqual(exp.reward, expected)

    def test_opponent_episode_records_agent_moves_only(self):
        trainer = make_trainer()
        for seat in (0, 1):
            engine, experiences = trainer.play_opponent_episode(RandomPolicy(seat), agent_seat=seat)

            self.assertTrue(experiences)
            self.assertTrue(all(exp.state.current_player == seat for exp in experiences))
            self.assertTrue(all(not exp.done and exp.reward == 0.0 for exp in experiences[:-1]))
            self.assertTrue(experiences[-1].done)
            self.assertEqual(experiences[-1].reward, terminal_reward(engine, seat))

    def test_illegal_opponent_move_raises(self):
        trainer = make_trainer()
        with self.assertRaises(IllegalMoveError):
            trainer.play_opponent_episode(lambda state, moves: 0, agent_seat=0)


class TestTrainingRuns(TestCase):
    """Per-run statistics and curriculum bookkeeping."""

    def test_stats_reset_between_runs(self):
        trainer = make_trainer()
        trainer.train_self_play(30)
        self.assertEqual(trainer.stats.games_played, 30)

        trainer.train_self_play(30)
        self.assertEqual(trainer.stats.games_played, 30)

        trainer.train_self_play(30, reset_stats=False)
        self.assertEqual(trainer.stats.games_played, 60)
        self.assertEqual(trainer.episode, 90)
        self.assertEqual(trainer.agent.stats.episode_count, 90)

    def test_stats_totals(self):
        trainer = make_trainer()
        stats = trainer.train_against_opponent(10, RandomPolicy(0), agent_seat=1)

        self.assertEqual(stats.wins + stats.losses + stats.draws, 10)
        self.assertGreater(len(trainer.agent.replay_buffer), 0)
        self.assertGreater(trainer.agent.training_step, 0)
        self.assertEqual(stats.as_dict()["games_played"], 10)

    def test_curriculum_is_cumulative(self):
        trainer = make_trainer()
        stats = trainer.train_curriculum(100)

        self.assertEqual(stats.games_played, 100)
        modes = [row["mode"] for row in trainer.history]
        self.assertEqual(modes.count("opponent"), 30)
        self.assertEqual(modes.count("self_play"), 70)
        self.assertEqual(modes[:30], ["opponent"] * 30)

    def test_custom_curriculum_floors_stage_sizes(self):
        trainer = make_trainer()
        stages = (
            CurriculumStage("a", 0.25, "self_play"),
            CurriculumStage("b", 0.5, "opponent", opponent=RandomPolicy(0)),
        )
        trainer.train_curriculum(7, stages)
        self.assertEqual(trainer.stats.games_played, 1 + 3)

    def test_unknown_curriculum_mode(self):
        trainer = make_trainer()
        with self.assertRaises(ValueError):
            trainer.train_curriculum(10, (CurriculumStage("x", 1.0, "league"),))

    def test_config_validation(self):
        with self.assertRaises(ValueError):
            TrainConfig(mode="league")
        with self.assertRaises(ValueError):
            TrainConfig(agent_seat=2)
        with self.assertRaises(ValueError):
            TrainConfig(eval_every=0)
        with self.assertRaises(ValueError):
            TrainConfig(eval_games=0)
        agent = QLearningAgent(AgentConfig(pits_per_player=4, hidden_sizes=(8,)))
        with self.assertRaises(ValueError):
            Trainer(agent, TrainConfig())


class TestCheckpoints(TestCase):
    """Evaluate-and-save training."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_writes_best_and_final(self):
        trainer = make_trainer()
        history = trainer.train_with_checkpoints(7, self.dir, eval_opponent=RandomPolicy(0))

        self.assertEqual(len(history), 3)
        self.assertEqual(trainer.stats.games_played, 7)
        self.assertTrue((self.dir / "best" / MODEL_FILENAME).exists())
        self.assertTrue((self.dir / "final" / MODEL_FILENAME).exists())

        meta = json.loads((self.dir / "best.json").read_text())
        self.assertEqual(meta["win_rate"], trainer.best_win_rate)
        self.assertIn("seat0", meta["evaluation"])

        saved_history = json.loads((self.dir / "eval_history.json").read_text())
        self.assertEqual(len(saved_history), 3)
        self.assertEqual(saved_history[-1][0], trainer.agent.training_step)

    def test_opponent_mode(self):
        trainer = make_trainer(mode="opponent", opponent="easy")
        trainer.train_with_checkpoints(3, self.dir, eval_every=3)

        self.assertEqual(len(trainer.eval_history), 1)
        self.assertTrue(all(row["mode"] == "opponent" for row in trainer.history))

    def test_non_positive_eval_interval_rejected(self):
        trainer = make_trainer()
        with self.assertRaises(ValueError):
            trainer.train_with_checkpoints(2, self.dir, eval_every=0)
        with self.assertRaises(ValueError):
            trainer.train_with_checkpoints(2, self.dir, eval_games=0)
        self.assertEqual(trainer.episode, 0)

    def test_curriculum_not_checkpointable(self):
        trainer = make_trainer(mode="curriculum")
        with self.assertRaises(ValueError):
            trainer.train_with_checkpoints(3, self.dir)


if __name__ == "__main__":
    main()
