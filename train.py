#!/usr/bin/env python3
"""
Train a Q-learning agent to play Kalah by self-play.

Writes config.json, checkpoints (best/final), eval history, history.csv and
training plots under <save-dir>/<run-name>.

Usage:
    python train.py                                # 50k self-play episodes
    python train.py --episodes 2000 --eval-every 500
    python train.py --mode opponent --opponent easy
    python train.py --mode curriculum --episodes 10000
    python train.py --resume runs/kalah_run/final
"""

import sys
import json
import logging
import argparse
from pathlib import Path

import torch
import numpy as np
from tqdm.auto import tqdm

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from kalah import (
    AgentConfig,
    QLearningAgent,
    TrainConfig,
    Trainer,
    make_policy,
    ModelNotFoundError,
)


def pick_device():
    """Select best available device."""
    if torch.cuda.is_available():
        return torch.device("cuda")
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def set_seed(seed: int):
    """Set random seeds for reproducibility."""
    import random
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)


def create_plots(history: list, eval_history: list, output_dir: Path):
    """Loss, schedules, game length and evaluation win rate."""
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt
    import pandas as pd

    df = pd.DataFrame(history)
    if df.empty:
        return
    window = 100
    df_roll = df.drop(columns=['mode']).rolling(window=window, min_periods=1).mean()

    # 1. Loss
    plt.figure(figsize=(10, 6))
    plt.plot(df['episode'], df_roll['loss'], linewidth=2)
    plt.title(f'Batch Loss (Rolling Avg, window={window})', fontsize=14, fontweight='bold')
    plt.xlabel('Episode', fontsize=12)
    plt.ylabel('MSE', fontsize=12)
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / 'plot_1_loss.png', dpi=150, bbox_inches='tight')
    plt.close()

    # 2. Exploration & learning rate
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))
    axes[0].plot(df['episode'], df['epsilon'], linewidth=2, color='green')
    axes[0].set_title('Epsilon', fontsize=12, fontweight='bold')
    axes[0].grid(True, alpha=0.3)
    axes[1].plot(df['episode'], df['lr'], linewidth=2, color='teal')
    axes[1].set_title('Learning Rate', fontsize=12, fontweight='bold')
    axes[1].grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / 'plot_2_schedules.png', dpi=150, bbox_inches='tight')
    plt.close()

    # 3. Game length & reward
    plt.figure(figsize=(10, 6))
    plt.plot(df['episode'], df_roll['moves'], label='Moves per Game', linewidth=2)
    plt.plot(df['episode'], df_roll['reward'] * 10, label='Reward x10', linewidth=2, alpha=0.7)
    plt.title(f'Game Length & Reward (Rolling Avg, window={window})', fontsize=14, fontweight='bold')
    plt.xlabel('Episode', fontsize=12)
    plt.legend(fontsize=11)
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / 'plot_3_game_length.png', dpi=150, bbox_inches='tight')
    plt.close()

    # 4. Evaluation
    if eval_history:
        steps, win_rates, eps = zip(*eval_history)
        plt.figure(figsize=(10, 6))
        plt.plot(steps, win_rates, marker='o', label='Win Rate', linewidth=2)
        plt.plot(steps, eps, marker='o', label='Epsilon', linewidth=2, alpha=0.7)
        plt.title('Evaluation vs Baseline', fontsize=14, fontweight='bold')
        plt.xlabel('Training Step', fontsize=12)
        plt.ylabel('Rate', fontsize=12)
        plt.legend(fontsize=11)
        plt.grid(True, alpha=0.3)
        plt.tight_layout()
        plt.savefig(output_dir / 'plot_4_eval.png', dpi=150, bbox_inches='tight')
        plt.close()


def main():
    parser = argparse.ArgumentParser(description="Train Kalah Q-learning agent")
    parser.add_argument("--episodes", type=int, default=50_000, help="Training episodes")
    parser.add_argument("--mode", choices=["self_play", "opponent", "curriculum"],
                        default="self_play", help="Training mode")
    parser.add_argument("--opponent", default="random",
                        choices=["random", "easy", "medium", "hard"],
                        help="Fixed opponent for --mode opponent")
    parser.add_argument("--agent-seat", type=int, default=0, choices=[0, 1], help="Agent seat vs opponent")
    parser.add_argument("--eval-every", type=int, default=1000, help="Evaluation frequency (episodes)")
    parser.add_argument("--eval-games", type=int, default=100, help="Games per evaluation")
    parser.add_argument("--log-interval", type=int, default=500, help="Print frequency")
    parser.add_argument("--batch-size", type=int, default=64, help="Training batch size")
    parser.add_argument("--lr", type=float, default=1e-3, help="Initial learning rate")
    parser.add_argument("--lr-end", type=float, default=5e-4, help="Final learning rate")
    parser.add_argument("--gamma", type=float, default=0.99, help="Discount factor")
    parser.add_argument("--epsilon-decay-steps", type=int, default=50_000, help="Decay horizon")
    parser.add_argument("--target-update-freq", type=int, default=1000, help="Target sync interval")
    parser.add_argument("--run-name", type=str, default="kalah_run", help="Run name for saving")
    parser.add_argument("--save-dir", type=str, default="runs", help="Save directory")
    parser.add_argument("--resume", type=str, default=None, help="Saved agent to continue from")
    parser.add_argument("--device", type=str, default=None, help="Device (cpu/cuda/mps)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--quiet", action="store_true", help="No progress output")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Device
    if args.device:
        device = torch.device(args.device)
    else:
        device = pick_device()
    print(f"Device: {device}")

    # Set seed
    set_seed(args.seed)

    # Config
    config = TrainConfig(
        seed=args.seed,
        episodes=args.episodes,
        mode=args.mode,
        opponent=args.opponent,
        agent_seat=args.agent_seat,
        verbose=not args.quiet,
        log_interval=args.log_interval,
        eval_every=args.eval_every,
        eval_games=args.eval_games,
        save_dir=args.save_dir,
    )
    agent_config = AgentConfig(
        learning_rate=args.lr,
        learning_rate_end=args.lr_end,
        gamma=args.gamma,
        epsilon_decay_steps=args.epsilon_decay_steps,
        batch_size=args.batch_size,
        target_update_freq=args.target_update_freq,
    )

    # Create save directory
    run_dir = Path(args.save_dir) / args.run_name
    run_dir.mkdir(parents=True, exist_ok=True)

    # Agent
    agent = QLearningAgent(agent_config, seed=args.seed, device=device)
    if args.resume:
        try:
            agent.load(args.resume)
        except ModelNotFoundError as e:
            print(f"{e} - starting from a fresh agent")
    print(f"Model parameters: {agent.model.net.count_parameters():,}")

    trainer = Trainer(agent, config)

    # Save config
    with open(run_dir / "config.json", "w") as f:
        json.dump(trainer.config_dict(), f, indent=2)

    print(f"\n=== Training ({config.mode}, {config.episodes:,} episodes) ===")
    if config.mode == "curriculum":
        trainer.train_curriculum(config.episodes)
        result = trainer.evaluate()
        trainer.eval_history.append((agent.training_step, result.win_rate, agent.epsilon))
        agent.save(run_dir / "final")
    else:
        opponent = make_policy(config.opponent, seed=config.seed) if config.mode == "opponent" else None
        trainer.train_with_checkpoints(config.episodes, run_dir, opponent=opponent)

    # Save history
    import pandas as pd
    pd.DataFrame(trainer.history).to_csv(run_dir / "history.csv", index=False)
    print(f"✓ History saved to {run_dir / 'history.csv'}")

    # Generate plots
    print("\n=== Generating Plots ===")
    plots_dir = run_dir / "plots"
    plots_dir.mkdir(exist_ok=True)
    create_plots(trainer.history, trainer.eval_history, plots_dir)
    print(f"✓ Plots saved to {plots_dir}")

    # Final summary
    print("\n=== Final Results ===")
    stats = trainer.stats
    tqdm.write(f"Games: {stats.games_played} | W {stats.wins} / L {stats.losses} / D {stats.draws} "
               f"({stats.win_rate:.1%}) | avg loss {stats.avg_loss:.4f}")
    print(f"Final epsilon: {agent.epsilon:.3f} | training steps: {agent.training_step}")
    if trainer.eval_history:
        step, wr, _ = trainer.eval_history[-1]
        print(f"Last eval @ step {step}: {wr:.1%} wins")
    if trainer.best_win_rate >= 0:
        print(f"Best eval win rate: {trainer.best_win_rate:.1%}")

    print(f"\n✅ All outputs saved to: {run_dir}")


if __name__ == "__main__":
    main()
