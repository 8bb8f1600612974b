"""
RotationAdvisor — Session coordination for the crop rotation planner.

Owns the plot configuration, the current game state, the activation history
and the latest recommendation. Frontends (terminal loop below, web.py) call
the action methods in response to user input and read the properties to
decide what to show.
"""
from __future__ import annotations

import argparse
import logging
import re

from activation_log import ActivationHistory
from garden_engine import (
    Activation,
    ConfigurationError,
    GameState,
    apply_activation,
    legal_activations,
    validate_plot_config,
)
from planner import PlanResult, PlannerConfig, plan
from report import history_to_dict, plan_to_dict, risk_level, top_outcomes, outcome_label
from settings import DEFAULTS, load_settings

logger = logging.getLogger(__name__)


def _starting_count(settings) -> int:
    count = settings.get("starting_seed_count", DEFAULTS["starting_seed_count"])
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        raise ConfigurationError(f"starting_seed_count must be a non-negative integer, got {count!r}")
    return count


class RotationAdvisor:
    """Coordinates state, history and planning for one garden.

    The planner itself is stateless between decisions; everything carried
    across the pause between a recommendation and the user's confirmation
    lives here.
    """

    def __init__(self, plot_colors, settings: dict | None = None) -> None:
        """Initialize the advisor.

        Args:
            plot_colors: Plot configuration, e.g. [{"color1": "yellow", "color2": "red"}]
            settings: Settings dict (see settings.DEFAULTS); defaults if None

        Raises:
            ConfigurationError: if the plots or settings are invalid. Nothing
                is built in that case.
        """
        self.settings = dict(DEFAULTS)
        if settings:
            self.settings.update(settings)
        self.config = PlannerConfig.from_settings(self.settings)
        self.plot_colors = validate_plot_config(plot_colors)
        initial = GameState.create_initial(self.plot_colors, _starting_count(self.settings))
        self.history = ActivationHistory(initial)
        self.state = initial
        self._recommendation: PlanResult | None = None

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def initial_state(self) -> GameState:
        return self.history.initial_state

    @property
    def recommendation(self) -> PlanResult:
        """The current plan, computed on first access after each change."""
        if self._recommendation is None:
            self._recommendation = plan(self.state, self.config)
        return self._recommendation

    @property
    def is_complete(self) -> bool:
        return self.recommendation.is_complete

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo()

    # ── Action methods ───────────────────────────────────────────────────

    def update_settings(self, changes: dict) -> None:
        """Change planner settings and re-plan. The garden itself is kept.

        Raises:
            ConfigurationError: if the new settings are invalid; the old ones stay in effect
        """
        if not isinstance(changes, dict):
            raise ConfigurationError("Settings must be given as an object")
        merged = dict(self.settings)
        merged.update(changes)
        config = PlannerConfig.from_settings(merged)
        _starting_count(merged)
        self.settings = merged
        self.config = config
        self._recommendation = None

    def record_outcome(self, success: bool, actual_upgrades: dict | None = None,
                       activation: Activation | None = None) -> bool:
        """Apply a confirmed outcome and move to the next decision.

        Args:
            success: Whether the activation succeeded
            actual_upgrades: Optional observed totals keyed by (plot_index, field_index)
            activation: The activation that was played; the recommendation if None

        Returns:
            True if recorded, False if there was nothing legal to record
        """
        if activation is None:
            activation = self.recommendation.next_activation
        if activation is None or activation not in legal_activations(self.state):
            return False

        entry = self.history.record(self.state, activation, success, actual_upgrades)
        self.state = apply_activation(self.state, activation, success, entry.actual_upgrades)
        self._recommendation = None
        logger.info("%s %s (%d recorded)", activation.label,
                    "succeeded" if success else "failed", len(self.history))
        return True

    def undo(self) -> bool:
        """Drop the last recorded outcome and rebuild the state by replay."""
        state = self.history.undo()
        if state is None:
            return False
        self.state = state
        self._recommendation = None
        logger.info("Undo: %d activations remain", len(self.history))
        return True

    def reset(self, plot_colors=None) -> None:
        """Start over, optionally with a new plot configuration.

        Raises:
            ConfigurationError: if plot_colors is invalid; the current garden is kept
        """
        if plot_colors is not None:
            pairs = validate_plot_config(plot_colors)
        else:
            pairs = self.plot_colors
        initial = GameState.create_initial(pairs, _starting_count(self.settings))
        self.plot_colors = pairs
        self.history.clear(initial)
        self.state = initial
        self._recommendation = None
        logger.info("Garden reset with %d plots", len(pairs))

    def snapshot(self) -> dict:
        """JSON-serializable view of the session for frontends."""
        data = plan_to_dict(self.recommendation)
        data["history"] = history_to_dict(self.history)
        data["can_undo"] = self.can_undo
        data["settings"] = dict(self.settings)
        return data


# ── Terminal advisor ─────────────────────────────────────────────────────────

_OBSERVED_RE = re.compile(r"(\d+):(\d+)=([^\s]*)")


def parse_observed(text: str) -> dict:
    """Parse observed totals typed after an outcome.

    Format: one 'plot:field=t2,t3,t4' per affected field, plots and fields
    numbered from 1, e.g. '2:1=6,1,0'. Missing numbers count as zero.
    """
    observed = {}
    for plot, slot, values in _OBSERVED_RE.findall(text):
        observed[(int(plot) - 1, int(slot) - 1)] = values.split(",")
    return observed


def format_recommendation(result: PlanResult) -> str:
    """Render a plan as plain text."""
    if result.is_complete:
        return f"Garden complete. Final score: {result.expected_score:.1f}"

    lines = [f"Next: {result.next_activation.label}  (expected score {result.expected_score:.1f})"]
    if len(result.best_sequence) > 1:
        steps = " -> ".join(a.label for a in result.best_sequence)
        lines.append(f"  Plan: {steps}")
    if result.best_result is not None:
        lines.append(f"  Expected T3: {result.best_result.expected_t3:.1f}   "
                     f"Expected T4: {result.best_result.expected_t4:.1f}   "
                     f"Risk: {risk_level(result.best_result.outcomes)}")
        for outcome in top_outcomes(result.best_result.outcomes, limit=5):
            lines.append(f"    {outcome.probability * 100:5.1f}%  T3={outcome.total_t3:<3d} "
                         f"T4={outcome.total_t4:<3d} {outcome_label(outcome.probability)}")
    lines.append("  Alternatives:")
    for activation, entry in sorted(result.score_table.items(), key=lambda item: item[1].score, reverse=True):
        lines.append(f"    {entry.label:32s} {entry.score:8.2f}  ({entry.evaluations} plans)")
    diag = result.diagnostics
    lines.append(f"  [{diag['search_mode']} depth={diag['lookahead_depth']} "
                 f"evaluated={diag['sequences_evaluated']} cache={diag['cache_size']}"
                 f"{' truncated' if diag['truncated'] else ''}]")
    return "\n".join(lines)


def format_state(state: GameState) -> str:
    lines = []
    for plot in state.plots:
        status = "failed" if plot.failed else ("active" if plot.active else "done")
        cells = []
        for slot in (0, 1):
            f = state.field(plot.index, slot)
            mark = "x" if f.used else " "
            cells.append(f"[{mark}] {f.color.value:6s} T1={f.t1:<2d} T2={f.t2:<2d} T3={f.t3:<2d} T4={f.t4:<2d}")
        lines.append(f"Plot {plot.index + 1} ({status}): " + " | ".join(cells))
    return "\n".join(lines)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Optional list of args (for testing). None uses sys.argv.

    Returns:
        Parsed argparse.Namespace.
    """
    parser = argparse.ArgumentParser(description="Crop rotation advisor")
    parser.add_argument("--plots", nargs="+", metavar="COLOR1/COLOR2", default=["yellow/red"] * 3,
                        help="Plot colors, e.g. yellow/red blue/red (default: three yellow/red plots)")
    parser.add_argument("--depth", type=int, help="Lookahead depth")
    parser.add_argument("--branching", type=int, help="Maximum sequences evaluated per decision")
    parser.add_argument("--threshold", type=float, help="Do not expand branches below this probability")
    parser.add_argument("--shallow", action="store_true", help="Single-step search only")
    parser.add_argument("--no-ordering", action="store_true", help="Disable heuristic sequence ordering")
    parser.add_argument("--settings", metavar="PATH", help="Settings file (default: ~/.crop_rotation_settings.json)")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> dict:
    settings = load_settings(args.settings)
    if args.depth is not None:
        settings["lookahead_depth"] = args.depth
    if args.branching is not None:
        settings["max_branching_factor"] = args.branching
    if args.threshold is not None:
        settings["probability_threshold"] = args.threshold
    if args.shallow:
        settings["enable_deep_search"] = False
    if args.no_ordering:
        settings["use_heuristic_ordering"] = False
    return settings


HELP_TEXT = ("Commands: s = success, f = failure (optionally followed by observed totals "
             "'plot:field=t2,t3,t4'), u = undo, r = reset, q = quit")


def main(argv: list[str] | None = None) -> None:
    """Interactive terminal advisor."""
    args = parse_args(argv)
    try:
        advisor = RotationAdvisor(args.plots, settings_from_args(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        raise SystemExit(2)

    print(HELP_TEXT)
    while True:
        print()
        print(format_state(advisor.state))
        print(format_recommendation(advisor.recommendation))
        try:
            line = input("> ").strip()
        except EOFError:
            break
        if not line:
            continue
        command, _, rest = line.partition(" ")
        command = command.lower()
        if command == "q":
            break
        elif command in ("s", "f"):
            if advisor.is_complete:
                print("Nothing left to activate.")
                continue
            advisor.record_outcome(command == "s", parse_observed(rest) or None)
        elif command == "u":
            if not advisor.undo():
                print("Nothing to undo.")
        elif command == "r":
            advisor.reset()
        else:
            print(HELP_TEXT)


if __name__ == "__main__":
    main()
