"""
Sequences — Candidate plan enumeration and the cheap scoring layers around it.

Contents:
    generate_sequences()  — bounded enumeration of activation sequences, length 1..D
    heuristic_score()     — static score used to order sequences before evaluation
    order_sequences()     — stable descending sort by heuristic_score()
    strategic_bonuses()   — first-step bonus steering the planner toward weaker
                            duplicate plots first

Nothing here recurses through outcomes; the expensive work happens in planner.py.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Tuple

from garden_engine import Activation, GameState, UPGRADE_PROBABILITIES, T3_VALUE, T4_VALUE


# ── Sequence generator ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class SequenceBatch:
    """Sequences produced under a branching cap."""
    sequences: Tuple[Tuple[Activation, ...], ...]
    truncated: bool  # True if the cap stopped generation early

    def __len__(self):
        return len(self.sequences)

    def __iter__(self):
        return iter(self.sequences)


def generate_sequences(activations, max_depth: int, max_branching_factor: int) -> SequenceBatch:
    """Enumerate activation sequences of every length from 1 to max_depth.

    Shorter sequences come first. A sequence never repeats the same
    (plot, field) pair, but may use both fields of one plot, since a
    successful activation leaves the plot open for its second field.
    Generation stops once max_branching_factor sequences exist.

    Args:
        activations: Legal activations at the decision point
        max_depth: Longest sequence to build (>= 1)
        max_branching_factor: Maximum number of sequences returned (>= 1)

    Returns:
        SequenceBatch with the sequences and a truncation flag
    """
    activations = list(activations)
    depth = min(max_depth, len(activations))
    sequences = []
    truncated = False

    def extend(current, used_keys, length):
        nonlocal truncated
        if len(sequences) >= max_branching_factor:
            truncated = True
            return
        if len(current) == length:
            sequences.append(tuple(current))
            return
        for activation in activations:
            if activation.key in used_keys:
                continue
            current.append(activation)
            used_keys.add(activation.key)
            extend(current, used_keys, length)
            used_keys.discard(activation.key)
            current.pop()
            if truncated:
                return

    for length in range(1, depth + 1):
        extend([], set(), length)
        if truncated:
            break

    return SequenceBatch(sequences=tuple(sequences), truncated=truncated)


# ── Heuristic scorer ─────────────────────────────────────────────────────────

# Weight of the first-step target's own seeds
_TARGET_T2_WEIGHT = 2.0
_POTENTIAL_SCALE = 0.5
_STEP_BONUS = 0.5


def heuristic_score(sequence, state: GameState) -> float:
    """Cheap static score of a sequence, used only to order evaluation.

    first target: T2*2 + T3*10 - T4*5
    plus half the near-term T3 potential of the fields the first step would upgrade
    plus a small bonus per step so longer plans are not starved
    """
    if not sequence:
        return 0.0
    first = sequence[0]
    target = state.field(first.plot_index, first.field_index)
    score = target.t2 * _TARGET_T2_WEIGHT + target.t3 * T3_VALUE + target.t4 * T4_VALUE

    p12 = UPGRADE_PROBABILITIES[1]
    p23 = UPGRADE_PROBABILITIES[2]
    potential = 0.0
    for f in state.fields:
        if f.used or f.key == target.key or f.color == target.color:
            continue
        potential += (f.t1 * p12 * p23 + f.t2 * p23) * T3_VALUE

    return score + potential * _POTENTIAL_SCALE + len(sequence) * _STEP_BONUS


def order_sequences(sequences, state: GameState) -> list:
    """Sort sequences by heuristic_score(), best first. Stable for equal scores."""
    return sorted(sequences, key=lambda seq: heuristic_score(seq, state), reverse=True)


# ── Strategic bonus preprocessor ─────────────────────────────────────────────

DUPLICATE_GROUP_MIN = 3
BONUS_PER_RANK = 5.0


def field_quality(field) -> int:
    """Intrinsic quality used to rank duplicate fields: T2 + T3*5."""
    return field.t2 + field.t3 * 5


def strategic_bonuses(activations, state: GameState) -> Dict[Tuple[int, int], float]:
    """Bonus for consuming weaker fields of duplicated plots first.

    Activations are grouped by the color-pair signature of their plot. When
    three or more plots share a signature, the fields of each color in that
    group are ranked by field_quality() ascending and the field at rank r of
    n gets 5 * (n - r - 1). The strongest field gets nothing. On equal
    quality the lowest plot index counts as the strongest.

    Ranking is per color within the group, not across all of its fields: a
    yellow field only competes with the yellow fields of the duplicate plots.

    Returns:
        Dict mapping (plot_index, field_index) to a positive bonus
    """
    groups = defaultdict(list)
    for activation in activations:
        plot = state.plot(activation.plot_index)
        groups[plot.signature].append(activation)

    bonuses = {}
    for group in groups.values():
        if len({a.plot_index for a in group}) < DUPLICATE_GROUP_MIN:
            continue
        by_color = defaultdict(list)
        for activation in group:
            by_color[activation.color].append(activation)
        for candidates in by_color.values():
            ranked = sorted(
                candidates,
                key=lambda a: (field_quality(state.field(a.plot_index, a.field_index)),
                               -a.plot_index, -a.field_index))
            count = len(ranked)
            for rank, activation in enumerate(ranked):
                bonus = BONUS_PER_RANK * (count - rank - 1)
                if bonus > 0:
                    bonuses[activation.key] = bonus
    return bonuses
