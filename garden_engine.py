"""
Garden Engine - Pure crop rotation game logic without UI dependencies

This module contains the core model of the crop rotation mini-game: plots,
fields, the immutable GameState, and the pure transition function that
applies one activation. It has no planner or UI dependencies so it can be
unit tested on its own.

Transitions never mutate a GameState. Only the changed Plot and Field entries
are rebuilt; untouched entries are shared with the previous snapshot.
"""
from dataclasses import dataclass, replace
from typing import Mapping, Optional, Tuple
from enum import Enum
import math
import random


class Color(Enum):
    """Seed colors of the fixed palette"""
    YELLOW = "yellow"
    RED = "red"
    BLUE = "blue"


COLOR_NAMES = {
    Color.YELLOW: "Yellow (Primal)",
    Color.RED: "Red (Wild)",
    Color.BLUE: "Blue (Vivid)",
}

COLOR_EMOJIS = {
    Color.YELLOW: "\U0001F7E1",
    Color.RED: "\U0001F534",
    Color.BLUE: "\U0001F535",
}

STARTING_SEED_COUNT = 23

# Chance that a single seed moves up from the keyed tier during one upgrade round
UPGRADE_PROBABILITIES = {
    1: 0.25,  # T1 -> T2
    2: 0.20,  # T2 -> T3
    3: 0.05,  # T3 -> T4
}

SUCCESS_PROBABILITY = 0.6
FAILURE_PROBABILITY = 0.4

T3_VALUE = 10
T4_VALUE = -5


class ConfigurationError(ValueError):
    """Plot configuration or planner settings were rejected."""


class InternalConsistencyError(RuntimeError):
    """An activation referenced a field that does not exist in the state, or named the wrong color for it."""


# ══════════════════════════════════════════════════════════════════════════════
# Data model
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Field:
    """One color slot of a plot, holding tiered seed counts - immutable"""
    plot_index: int
    field_index: int  # 0 or 1
    color: Color
    t1: int
    t2: int = 0
    t3: int = 0
    t4: int = 0
    used: bool = False

    @property
    def key(self) -> Tuple[int, int]:
        return (self.plot_index, self.field_index)

    @property
    def tiers(self) -> Tuple[int, int, int, int]:
        return (self.t1, self.t2, self.t3, self.t4)

    @property
    def total(self) -> int:
        return self.t1 + self.t2 + self.t3 + self.t4


@dataclass(frozen=True)
class Plot:
    """A container of exactly two color-bound fields - immutable"""
    index: int
    colors: Tuple[Color, Color]
    active: bool = True
    failed: bool = False
    used_fields: Tuple[int, ...] = ()  # field indices activated so far, in order

    @property
    def signature(self) -> Tuple[str, str]:
        """Order-independent color pair, used to spot duplicate plots."""
        return tuple(sorted(color.value for color in self.colors))


@dataclass(frozen=True)
class Activation:
    """A candidate move: activate one field of one plot."""
    plot_index: int
    color: Color
    field_index: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.plot_index, self.field_index)

    @property
    def label(self) -> str:
        """Human readable label, plots numbered from 1."""
        return (f"Plot {self.plot_index + 1} {COLOR_EMOJIS[self.color]} "
                f"{COLOR_NAMES[self.color]}")


@dataclass(frozen=True)
class TierTotals:
    """Caller-observed post-upgrade totals for one field."""
    t2: int = 0
    t3: int = 0
    t4: int = 0


@dataclass(frozen=True)
class GameState:
    """Immutable game state - every plot and field at one point in time"""
    plots: Tuple[Plot, ...]
    fields: Tuple[Field, ...]  # ordered by (plot_index, field_index)
    starting_count: int = STARTING_SEED_COUNT

    @staticmethod
    def create_initial(plot_colors, starting_count: int = STARTING_SEED_COUNT) -> 'GameState':
        """Create a fresh garden: all plots active, every field at starting_count T1 seeds.

        Args:
            plot_colors: Plot configuration, validated by validate_plot_config()
            starting_count: T1 seeds each field starts with

        Returns:
            New GameState

        Raises:
            ConfigurationError: if the configuration is incomplete or invalid
        """
        pairs = validate_plot_config(plot_colors)
        if starting_count < 0:
            raise ConfigurationError("Starting seed count must not be negative")
        plots = tuple(Plot(index=i, colors=pair) for i, pair in enumerate(pairs))
        fields = tuple(
            Field(plot_index=i, field_index=slot, color=color, t1=starting_count)
            for i, pair in enumerate(pairs)
            for slot, color in enumerate(pair)
        )
        return GameState(plots=plots, fields=fields, starting_count=starting_count)

    def plot(self, plot_index: int) -> Plot:
        """Return the plot at plot_index.

        Raises:
            InternalConsistencyError: if there is no such plot
        """
        if 0 <= plot_index < len(self.plots) and self.plots[plot_index].index == plot_index:
            return self.plots[plot_index]
        raise InternalConsistencyError(f"No plot {plot_index} in a garden of {len(self.plots)} plots")

    def field(self, plot_index: int, field_index: int) -> Field:
        """Return the field at (plot_index, field_index).

        Raises:
            InternalConsistencyError: if the field cannot be located
        """
        position = plot_index * 2 + field_index
        if field_index in (0, 1) and 0 <= position < len(self.fields):
            found = self.fields[position]
            if found.key == (plot_index, field_index):
                return found
        raise InternalConsistencyError(
            f"No field {field_index} on plot {plot_index} in the current state")

    def sibling(self, field: Field) -> Field:
        """Return the other field of the same plot."""
        return self.field(field.plot_index, 1 - field.field_index)


# ══════════════════════════════════════════════════════════════════════════════
# Configuration input
# ══════════════════════════════════════════════════════════════════════════════

def _parse_color(value, plot_number: int) -> Color:
    if isinstance(value, Color):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"Plot {plot_number} is missing a color")
    try:
        return Color(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Plot {plot_number} has unknown color {value!r} "
            f"(expected one of: {', '.join(c.value for c in Color)})") from None


def validate_plot_config(plot_colors):
    """Validate a plot configuration and return it as a list of color pairs.

    Each plot may be given as a mapping with color1/color2 keys or as a
    two-item sequence. Colors may be Color members or their string values.

    Raises:
        ConfigurationError: if no plots are given, or any plot is missing a
            color or uses a color outside the palette
    """
    if not plot_colors:
        raise ConfigurationError("At least one plot must be configured")

    if isinstance(plot_colors, (str, Mapping)):
        raise ConfigurationError("Plots must be given as a list")
    try:
        plots = list(plot_colors)
    except TypeError:
        raise ConfigurationError("Plots must be given as a list") from None

    pairs = []
    for i, plot in enumerate(plots):
        number = i + 1
        if isinstance(plot, Mapping):
            raw = (plot.get("color1"), plot.get("color2"))
        elif isinstance(plot, str):
            raw = tuple(plot.split("/")) if "/" in plot else (plot, None)
        else:
            try:
                raw = tuple(plot)
            except TypeError:
                raise ConfigurationError(f"Plot {number} must be a pair of colors") from None
        if len(raw) != 2:
            raise ConfigurationError(f"Plot {number} must have exactly two colors")
        pairs.append((_parse_color(raw[0], number), _parse_color(raw[1], number)))
    return pairs


def _to_count(value) -> int:
    """Parse a loose numeric input; missing or unparseable values count as zero."""
    try:
        count = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, count)


def parse_tier_totals(raw) -> TierTotals:
    """Build TierTotals from user input.

    Accepts a mapping with t2/t3/t4 keys or a (t2, t3, t4) sequence. Missing
    or unparseable entries are treated as zero.
    """
    if isinstance(raw, TierTotals):
        return raw
    if raw is None:
        return TierTotals()
    if isinstance(raw, Mapping):
        return TierTotals(t2=_to_count(raw.get("t2")),
                          t3=_to_count(raw.get("t3")),
                          t4=_to_count(raw.get("t4")))
    if isinstance(raw, str):
        raw = raw.split(",")
    try:
        values = list(raw) + [None] * 3
    except TypeError:
        return TierTotals()
    return TierTotals(t2=_to_count(values[0]), t3=_to_count(values[1]), t4=_to_count(values[2]))


# ══════════════════════════════════════════════════════════════════════════════
# Upgrades
# ══════════════════════════════════════════════════════════════════════════════

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def upgrade_field(field: Field) -> Field:
    """Apply one deterministic expected-value upgrade round to a field.

    Tiers are processed top-down (T3->T4, then T2->T3, then T1->T2) so seeds
    promoted in this round are not promoted again.
    """
    t1, t2, t3, t4 = field.tiers

    moved = _round_half_up(t3 * UPGRADE_PROBABILITIES[3])
    t3 -= moved
    t4 += moved

    moved = _round_half_up(t2 * UPGRADE_PROBABILITIES[2])
    t2 -= moved
    t3 += moved

    moved = _round_half_up(t1 * UPGRADE_PROBABILITIES[1])
    t1 -= moved
    t2 += moved

    return replace(field, t1=t1, t2=t2, t3=t3, t4=t4)


def override_field(field: Field, totals: TierTotals, starting_count: int) -> Field:
    """Set a field's upper tiers from observed totals and recompute T1 as the remainder."""
    t1 = max(0, starting_count - (totals.t2 + totals.t3 + totals.t4))
    return replace(field, t1=t1, t2=totals.t2, t3=totals.t3, t4=totals.t4)


def _binomial(count: int, probability: float, rng) -> int:
    return sum(1 for _ in range(count) if rng.random() < probability)


def simulate_upgrade(field: Field, rng=None) -> Field:
    """Apply one random upgrade round, sampling every seed independently.

    Same top-down order as upgrade_field(). Not used by the planner.
    """
    rng = rng or random
    t1, t2, t3, t4 = field.tiers

    moved = _binomial(t3, UPGRADE_PROBABILITIES[3], rng)
    t3 -= moved
    t4 += moved

    moved = _binomial(t2, UPGRADE_PROBABILITIES[2], rng)
    t2 -= moved
    t3 += moved

    moved = _binomial(t1, UPGRADE_PROBABILITIES[1], rng)
    t1 -= moved
    t2 += moved

    return replace(field, t1=t1, t2=t2, t3=t3, t4=t4)


# ══════════════════════════════════════════════════════════════════════════════
# Transitions
# ══════════════════════════════════════════════════════════════════════════════

def is_legal(state: GameState, activation: Activation) -> bool:
    """Check if an activation can be taken: plot active and field unused.

    Raises:
        InternalConsistencyError: if the activation's field is not in the state,
            or its color does not match the field
    """
    field = state.field(activation.plot_index, activation.field_index)
    if field.color != activation.color:
        raise InternalConsistencyError(
            f"{activation.label} targets a {field.color.value} field on plot {activation.plot_index + 1}")
    return state.plot(activation.plot_index).active and not field.used


def fields_to_upgrade(state: GameState, activated: Field) -> Tuple[Field, ...]:
    """Unused fields, other than the activated one, whose color differs from it."""
    return tuple(f for f in state.fields
                 if not f.used and f.key != activated.key and f.color != activated.color)


def apply_activation(state: GameState, activation: Activation, success: bool,
                     actual_upgrades: Optional[Mapping[Tuple[int, int], TierTotals]] = None) -> GameState:
    """
    Activate one field and return the resulting state.

    The activated field becomes used and every other unused field of a
    different color gets one upgrade round, on success and failure alike.
    Where actual_upgrades holds observed totals for a field, those replace the
    expected-value upgrade for that field. On failure the plot is closed for
    good; on success it stays open while it still has an unused field.

    If the activation is not legal, returns state unchanged.

    Args:
        state: Current game state
        activation: Field to activate
        success: Whether the activation succeeded
        actual_upgrades: Optional observed totals keyed by (plot_index, field_index)

    Returns:
        New GameState

    Raises:
        InternalConsistencyError: if the targeted field cannot be located
    """
    if not is_legal(state, activation):
        return state

    activated = state.field(activation.plot_index, activation.field_index)
    upgrade_keys = {f.key for f in fields_to_upgrade(state, activated)}
    overrides = actual_upgrades or {}

    new_fields = []
    for f in state.fields:
        if f.key == activated.key:
            f = replace(f, used=True)
        elif f.key in upgrade_keys:
            if f.key in overrides:
                f = override_field(f, parse_tier_totals(overrides[f.key]), state.starting_count)
            else:
                f = upgrade_field(f)
        new_fields.append(f)

    plot = state.plot(activation.plot_index)
    used_fields = plot.used_fields + (activation.field_index,)
    if success:
        new_plot = replace(plot, used_fields=used_fields, active=len(set(used_fields)) < 2)
    else:
        new_plot = replace(plot, used_fields=used_fields, active=False, failed=True)

    plots = list(state.plots)
    plots[plot.index] = new_plot
    return replace(state, plots=tuple(plots), fields=tuple(new_fields))


def simulate_activation(state: GameState, activation: Activation, rng=None):
    """Play one activation with random outcome and random per-seed upgrades.

    Returns:
        (success, new_state, observed) where observed maps each upgraded
        field's key to the TierTotals it ended with. Feeding observed back into
        apply_activation() as actual_upgrades reproduces new_state.
    """
    rng = rng or random
    if not is_legal(state, activation):
        return False, state, {}
    success = rng.random() < SUCCESS_PROBABILITY
    activated = state.field(activation.plot_index, activation.field_index)
    observed = {}
    for f in fields_to_upgrade(state, activated):
        upgraded = simulate_upgrade(f, rng)
        observed[f.key] = TierTotals(t2=upgraded.t2, t3=upgraded.t3, t4=upgraded.t4)
    return success, apply_activation(state, activation, success, observed), observed


# ══════════════════════════════════════════════════════════════════════════════
# Activation generator and queries
# ══════════════════════════════════════════════════════════════════════════════

def legal_activations(state: GameState) -> list:
    """List every activation available now, ordered by plot then field.

    An empty list means the garden is complete.
    """
    activations = []
    for plot in state.plots:
        if not plot.active:
            continue
        for slot in (0, 1):
            field = state.field(plot.index, slot)
            if not field.used:
                activations.append(Activation(plot_index=plot.index, color=field.color, field_index=slot))
    return activations


def is_complete(state: GameState) -> bool:
    """Check if no activation remains."""
    return not legal_activations(state)


def total_t3(state: GameState) -> int:
    return sum(f.t3 for f in state.fields)


def total_t4(state: GameState) -> int:
    return sum(f.t4 for f in state.fields)


def state_key(state: GameState) -> tuple:
    """Canonical hashable form of a state, independent of collection order."""
    plots = tuple(sorted((p.index, p.active, p.failed, tuple(sorted(p.used_fields)))
                         for p in state.plots))
    fields = tuple(sorted((f.plot_index, f.field_index, f.color.value, f.t1, f.t2, f.t3, f.t4, f.used)
                          for f in state.fields))
    return (state.starting_count, plots, fields)
