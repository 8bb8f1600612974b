#!/usr/bin/env python3
"""
Crop Rotation Planner Benchmark — Play N simulated gardens per policy and print yield distributions.

Outcomes and upgrades are drawn at random (60/40 success, per-seed upgrades),
so this measures realized yield rather than the planner's own expectation.

Usage: python planner_benchmark.py [--games N] [--policy NAME]
       python planner_benchmark.py --verbose --games 50 --depth 4
       python planner_benchmark.py --csv --games 200 --plots yellow/red yellow/red blue/red
"""
import argparse
import random
import statistics
import time

from garden_engine import (
    GameState, T3_VALUE, T4_VALUE,
    legal_activations, simulate_activation, total_t3, total_t4,
)
from planner import PlannerConfig, plan


def first_policy(state):
    """Baseline: always the first legal activation."""
    return legal_activations(state)[0]


def random_policy(state):
    """Baseline: a random legal activation."""
    return random.choice(legal_activations(state))


def planner_policy(config):
    """Policy that follows the planner's recommendation under config."""
    def choose(state):
        return plan(state, config).next_activation
    return choose


def play_garden(plot_colors, policy, rng=None):
    """Play a garden to completion with simulated outcomes.

    Returns:
        (final_state, decisions) where decisions is the number of activations played
    """
    rng = rng or random
    state = GameState.create_initial(plot_colors)
    decisions = 0
    while legal_activations(state):
        activation = policy(state)
        _, state, _ = simulate_activation(state, activation, rng)
        decisions += 1
    return state, decisions


def final_score(state):
    return total_t3(state) * T3_VALUE + total_t4(state) * T4_VALUE


def benchmark_policy(policy, plot_colors, num_games, start_seed=0):
    """Run num_games with a policy and return scores, decision count and elapsed time."""
    scores = []
    decisions = 0
    t0 = time.perf_counter()
    for seed in range(start_seed, start_seed + num_games):
        random.seed(seed)
        state, played = play_garden(plot_colors, policy)
        scores.append(final_score(state))
        decisions += played
    elapsed = time.perf_counter() - t0
    return scores, decisions, elapsed


def score_summary(scores):
    """Distribution of final scores: avg, stdev, median, min, max and quartiles."""
    ordered = sorted(scores)
    n = len(ordered)
    return {
        "avg": sum(ordered) / n,
        "stdev": statistics.stdev(ordered) if n >= 2 else 0.0,
        "median": statistics.median(ordered),
        "min": ordered[0],
        "max": ordered[-1],
        "p25": ordered[n // 4],
        "p75": ordered[(3 * n) // 4],
    }


def print_results(name, scores, decisions, elapsed, verbose=False):
    """Print formatted benchmark results."""
    summary = score_summary(scores)
    per_decision = elapsed / max(decisions, 1) * 1000
    print(f"  {name:25s}  avg={summary['avg']:6.1f}  min={summary['min']:4d}  max={summary['max']:4d}  "
          f"({len(scores)} gardens in {elapsed:.2f}s, {per_decision:.1f}ms/decision)")
    if verbose:
        print(f"  {'':25s}  stdev={summary['stdev']:5.1f}  median={summary['median']:5.0f}  "
              f"p25={summary['p25']:4d}  p75={summary['p75']:4d}")


CSV_FIELDS = ("avg", "stdev", "median", "min", "max", "p25", "p75")


def print_csv_header():
    print(",".join(("policy", "gardens") + CSV_FIELDS + ("elapsed_s",)))


def print_csv_row(name, scores, elapsed):
    summary = score_summary(scores)
    print(f"{name},{len(scores)},{summary['avg']:.1f},{summary['stdev']:.1f},{summary['median']:.0f},"
          f"{summary['min']},{summary['max']},{summary['p25']},{summary['p75']},{elapsed:.2f}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Crop Rotation Planner Benchmark")
    parser.add_argument("--games", type=int, default=100,
                        help="Number of gardens per policy (default: 100)")
    parser.add_argument("--plots", nargs="+", default=["yellow/red", "yellow/red", "yellow/red", "blue/red"],
                        metavar="COLOR1/COLOR2", help="Plot colors (default: 3x yellow/red + blue/red)")
    parser.add_argument("--depth", type=int, default=3,
                        help="Lookahead depth for the deep planner (default: 3)")
    parser.add_argument("--branching", type=int, default=500,
                        help="Sequence cap for the deep planner (default: 500)")
    parser.add_argument("--policy", choices=["first", "random", "shallow", "deep"],
                        help="Run only a single policy (default: all)")
    parser.add_argument("--verbose", action="store_true",
                        help="Show extra statistics (stdev, median, percentiles)")
    parser.add_argument("--csv", action="store_true",
                        help="Output results as CSV")
    args = parser.parse_args(argv)

    deep = PlannerConfig(lookahead_depth=args.depth, max_branching_factor=args.branching)
    all_policies = {
        "first": ("First legal", first_policy),
        "random": ("Random", random_policy),
        "shallow": ("Planner (single-step)", planner_policy(PlannerConfig(enable_deep_search=False))),
        "deep": (f"Planner (depth {args.depth})", planner_policy(deep)),
    }

    if args.policy:
        policies = [all_policies[args.policy]]
    else:
        policies = list(all_policies.values())

    if args.csv:
        print_csv_header()
        for name, policy in policies:
            scores, _, elapsed = benchmark_policy(policy, args.plots, args.games)
            print_csv_row(name, scores, elapsed)
    else:
        print(f"Crop Rotation Planner Benchmark — {args.games} gardens per policy")
        print("=" * 80)

        for name, policy in policies:
            scores, decisions, elapsed = benchmark_policy(policy, args.plots, args.games)
            print_results(name, scores, decisions, elapsed, verbose=args.verbose)

        print("=" * 80)


if __name__ == "__main__":
    main()
