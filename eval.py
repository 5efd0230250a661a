#!/usr/bin/env python3
"""
Evaluate a trained Kalah agent.

Usage:
    python eval.py --checkpoint runs/kalah_run/best
    python eval.py --checkpoint runs/kalah_run/best --opponents random hard
    python eval.py --checkpoint runs/kalah_run/best --play --seat 1
"""

import sys
import argparse
from pathlib import Path

import torch

# Add src to path
sys.path = [str(Path(__file__).parent / "src")] + sys.path

from kalah import (
    KalahEngine,
    QLearningAgent,
    evaluate_agent,
    make_policy,
    KalahError,
    ModelNotFoundError,
)


def play_interactive(agent, human_seat: int = 0):
    """Play a game against the agent (greedy)."""
    engine = KalahEngine(pits_per_player=agent.pits_per_player)

    print("\n=== Interactive Game ===")
    print(f"You are player {human_seat}. Enter the index of one of your pits.")
    print()

    with agent.exploration(0.0):
        while not engine.game_over:
            print(engine.render())
            state = engine.get_state()
            moves = engine.valid_moves()

            if state.current_player == human_seat:
                try:
                    action = int(input(f"Your move ({moves}): "))
                except ValueError:
                    print("Invalid move, try again")
                    continue
                except (EOFError, KeyboardInterrupt):
                    print("\nGame aborted")
                    return
            else:
                action = agent.select_action(state, moves)
                print(f"Agent plays: {action}")

            outcome = engine.make_move(action)
            if outcome is None:
                print("Invalid move, try again")
                continue
            if outcome.captured:
                print(f"Captured {outcome.captured} seeds")
            if outcome.extra_turn and not outcome.game_ended:
                print(f"Player {outcome.player} goes again")
            print()

    print(engine.render())
    winner = engine.winner()
    if winner is None:
        print("\nDraw!")
    elif winner == human_seat:
        print("\nYou win!")
    else:
        print("\nAgent wins!")


def main():
    parser = argparse.ArgumentParser(description="Evaluate Kalah agent")
    parser.add_argument("--checkpoint", type=str, required=True, help="Saved agent directory or model.pt")
    parser.add_argument("--device", type=str, default=None, help="Device")
    parser.add_argument("--play", action="store_true", help="Play interactive game")
    parser.add_argument("--seat", type=int, default=0, choices=[0, 1], help="Your seat in --play")
    parser.add_argument("--games", type=int, default=100, help="Number of eval games")
    parser.add_argument("--opponents", nargs="+", default=["random", "easy", "medium"],
                        choices=["random", "easy", "medium", "hard"], help="Baselines to play")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")

    args = parser.parse_args()

    # Device
    if args.device:
        device = torch.device(args.device)
    else:
        if torch.cuda.is_available():
            device = torch.device("cuda")
        elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
            device = torch.device("mps")
        else:
            device = torch.device("cpu")

    print(f"Device: {device}")

    # Load agent
    print(f"Loading checkpoint: {args.checkpoint}")
    try:
        agent = QLearningAgent.from_checkpoint(args.checkpoint, device=device, seed=args.seed)
    except ModelNotFoundError as e:
        print(e)
        return
    except KalahError as e:
        print(f"Could not load checkpoint: {e}")
        return

    print(f"Model parameters: {agent.model.net.count_parameters():,}")
    print(f"Training steps: {agent.training_step} | episodes: {agent.stats.episode_count}")

    # Interactive play
    if args.play:
        play_interactive(agent, human_seat=args.seat)
        return

    # Evaluation
    print("\n=== Evaluation ===")
    for name in args.opponents:
        print(f"\nvs {name} ({args.games} games)...")
        result = evaluate_agent(agent, games=args.games, opponent=make_policy(name, seed=args.seed))
        combined = result.combined
        print(f"  Wins:   {combined.win_rate:.2%}")
        print(f"  Draws:  {combined.draw_rate:.2%}")
        print(f"  Losses: {combined.loss_rate:.2%}")
        print(f"  Avg score: {combined.avg_agent_score:.1f} vs {combined.avg_opponent_score:.1f}")
        for seat, record in enumerate(result.seats):
            print(f"  Seat {seat}: {record.wins}W / {record.draws}D / {record.losses}L")


if __name__ == "__main__":
    main()
