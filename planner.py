"""
Planner — Expected-value search over activation sequences.

Contains:
- PlannerConfig and PlanningContext (configuration + per-run memo cache)
- Outcome / EvaluationResult records
- evaluate(): recursive expectimax over success/failure chance nodes,
  with memoization and the stranded-field opportunity cost
- plan(): one recommendation plus a per-activation score table

No randomness — with the same state and configuration the planner always
returns the same recommendation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from garden_engine import (
    Activation, ConfigurationError, GameState,
    FAILURE_PROBABILITY, SUCCESS_PROBABILITY, T3_VALUE, T4_VALUE, UPGRADE_PROBABILITIES,
    apply_activation, is_legal, legal_activations, state_key, total_t3, total_t4,
)
from sequences import generate_sequences, order_sequences, strategic_bonuses

logger = logging.getLogger(__name__)

MAX_LOOKAHEAD_DEPTH = 8

# Future potential of fields still waiting for an activation
FUTURE_T2_RATE = 0.15
FUTURE_ACTIVATION_CHANCE = 0.5

# Opportunity cost multipliers by number of same-color alternatives left
_SCARCITY = {0: 2.0, 1: 1.5, 2: 1.0, 3: 0.7}
_SCARCITY_FLOOR = 0.5
_MAX_QUALITY_BONUS = 0.5


# ── Configuration ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PlannerConfig:
    """Search settings for one planning run."""
    lookahead_depth: int = 3
    max_branching_factor: int = 500
    enable_deep_search: bool = True
    probability_threshold: float = 0.0  # branches below this absolute probability are not expanded
    use_heuristic_ordering: bool = True
    include_future_potential: bool = True

    def __post_init__(self):
        if not isinstance(self.lookahead_depth, int) or not 1 <= self.lookahead_depth <= MAX_LOOKAHEAD_DEPTH:
            raise ConfigurationError(
                f"lookahead_depth must be between 1 and {MAX_LOOKAHEAD_DEPTH}, got {self.lookahead_depth!r}")
        if not isinstance(self.max_branching_factor, int) or self.max_branching_factor < 1:
            raise ConfigurationError(
                f"max_branching_factor must be at least 1, got {self.max_branching_factor!r}")
        for name in ("enable_deep_search", "use_heuristic_ordering", "include_future_potential"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} must be true or false, got {getattr(self, name)!r}")
        threshold = self.probability_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0.0 <= threshold < 1.0:
            raise ConfigurationError(
                f"probability_threshold must be in [0, 1), got {self.probability_threshold!r}")

    @classmethod
    def from_settings(cls, settings: dict) -> PlannerConfig:
        """Build a config from a settings dict (see settings.py); unknown keys are ignored."""
        known = {name: settings[name] for name in cls.__dataclass_fields__ if name in settings}
        return cls(**known)

    @property
    def search_mode(self) -> str:
        return "deep" if self.enable_deep_search else "single-step"


@dataclass
class PlanningContext:
    """Configuration and memo cache for one top-level planning run.

    Never share one across different root states.
    """
    config: PlannerConfig = field(default_factory=PlannerConfig)
    cache: Dict[tuple, EvaluationResult] = field(default_factory=dict)
    evaluations: int = 0
    cache_hits: int = 0
    pruned_branches: int = 0

    def clear(self) -> None:
        self.cache.clear()
        self.evaluations = 0
        self.cache_hits = 0
        self.pruned_branches = 0


# ── Result records ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Outcome:
    """One leaf of the outcome tree."""
    probability: float
    total_t3: int
    total_t4: int
    score: float
    path: Tuple[bool, ...] = ()  # success/failure of each resolved activation


@dataclass(frozen=True)
class EvaluationResult:
    """Probability-weighted totals of one (sub)tree."""
    expected_score: float
    expected_t3: float
    expected_t4: float
    probability: float
    outcomes: Tuple[Outcome, ...]

    def scaled(self, factor: float) -> EvaluationResult:
        """Return the result with every probability-weighted quantity multiplied by factor."""
        return EvaluationResult(
            expected_score=self.expected_score * factor,
            expected_t3=self.expected_t3 * factor,
            expected_t4=self.expected_t4 * factor,
            probability=self.probability * factor,
            outcomes=tuple(replace(o, probability=o.probability * factor) for o in self.outcomes),
        )

    def prefixed(self, branch: bool) -> EvaluationResult:
        """Return the result with branch prepended to every outcome path."""
        return replace(self, outcomes=tuple(replace(o, path=(branch,) + o.path) for o in self.outcomes))


@dataclass(frozen=True)
class ScoreEntry:
    """Best score found for one first move."""
    score: float
    evaluations: int
    label: str
    best_sequence: Tuple[Activation, ...]


@dataclass(frozen=True)
class PlanResult:
    """Output of one planning run, consumed by the advisor and report layer."""
    is_complete: bool
    state: GameState
    next_activation: Optional[Activation]
    expected_score: float
    available_activations: Tuple[Activation, ...]
    score_table: Dict[Activation, ScoreEntry]
    best_sequence: Tuple[Activation, ...]
    best_result: Optional[EvaluationResult]
    bonuses: Dict[Tuple[int, int], float]
    diagnostics: dict


# ── Evaluator ───────────────────────────────────────────────────────────────

def future_potential(state: GameState) -> float:
    """Value still latent in unused fields of active plots.

    T2 seeds are worth FUTURE_T2_RATE of a T3, T1 seeds go through one more
    upgrade first, and each field is assumed to be reached half of the time.
    """
    p12 = UPGRADE_PROBABILITIES[1]
    potential = 0.0
    for plot in state.plots:
        if not plot.active:
            continue
        for slot in (0, 1):
            f = state.field(plot.index, slot)
            if f.used:
                continue
            latent = f.t2 * FUTURE_T2_RATE * T3_VALUE + f.t1 * p12 * FUTURE_T2_RATE * T3_VALUE
            potential += latent * FUTURE_ACTIVATION_CHANCE
    return potential


def terminal_result(state: GameState, include_future_potential: bool = True) -> EvaluationResult:
    """Leaf evaluation at probability 1.0."""
    t3 = total_t3(state)
    t4 = total_t4(state)
    score = float(t3 * T3_VALUE + t4 * T4_VALUE)
    if include_future_potential:
        score += future_potential(state)
    return EvaluationResult(
        expected_score=score,
        expected_t3=float(t3),
        expected_t4=float(t4),
        probability=1.0,
        outcomes=(Outcome(probability=1.0, total_t3=t3, total_t4=t4, score=score),),
    )


def intrinsic_value(f) -> float:
    """What a field is worth on its own: T2*0.20*10 + T3*10."""
    return f.t2 * UPGRADE_PROBABILITIES[2] * T3_VALUE + f.t3 * T3_VALUE


def stranded_field_cost(state: GameState, stranded) -> float:
    """Estimated value lost when a failure closes a plot with an unused field.

    scarcity (fewer same-color alternatives -> higher) times quality (how much
    better than the alternatives' average, 1.0-1.5) times intrinsic value.
    Evaluated in the post-failure state.
    """
    value = intrinsic_value(stranded)
    if value <= 0:
        return 0.0

    alternatives = []
    for plot in state.plots:
        if not plot.active:
            continue
        for slot in (0, 1):
            f = state.field(plot.index, slot)
            if not f.used and f.color == stranded.color and f.key != stranded.key:
                alternatives.append(f)

    scarcity = _SCARCITY.get(len(alternatives), _SCARCITY_FLOOR)
    if alternatives:
        mean_alt = sum(intrinsic_value(f) for f in alternatives) / len(alternatives)
        edge = (value - mean_alt) / max(mean_alt, 1.0)
        quality = 1.0 + min(_MAX_QUALITY_BONUS, max(0.0, edge))
    else:
        quality = 1.0 + _MAX_QUALITY_BONUS
    return scarcity * quality * value


def _stranding_cost(state: GameState, activation: Activation,
                    success_state: GameState, failure_state: GameState) -> float:
    """Opportunity cost of the failure branch at probability 1.0, or 0 if nothing is stranded."""
    plot_index = activation.plot_index
    if not success_state.plot(plot_index).active or failure_state.plot(plot_index).active:
        return 0.0
    stranded = failure_state.field(plot_index, 1 - activation.field_index)
    if stranded.used:
        return 0.0
    return stranded_field_cost(failure_state, stranded)


def _evaluate_unit(sequence: Tuple[Activation, ...], state: GameState,
                   probability: float, context: PlanningContext) -> EvaluationResult:
    """Evaluate at unit probability; probability is only used for pruning and keys."""
    threshold = context.config.probability_threshold
    key = (state_key(state), tuple((a.plot_index, a.field_index) for a in sequence))
    if threshold > 0:
        key += (probability,)
    cached = context.cache.get(key)
    if cached is not None:
        context.cache_hits += 1
        return cached

    include_potential = context.config.include_future_potential
    remaining = sequence
    # Skip activations closed off by earlier steps of the same plan
    while remaining and not is_legal(state, remaining[0]):
        remaining = remaining[1:]

    if not remaining:
        result = terminal_result(state, include_potential)
    else:
        activation, tail = remaining[0], remaining[1:]
        success_state = apply_activation(state, activation, True)
        failure_state = apply_activation(state, activation, False)
        success_mass = probability * SUCCESS_PROBABILITY
        failure_mass = probability * FAILURE_PROBABILITY

        if threshold > 0 and success_mass < threshold:
            context.pruned_branches += 1
            success = terminal_result(success_state, include_potential)
        else:
            success = _evaluate_unit(tail, success_state, success_mass, context)

        if threshold > 0 and failure_mass < threshold:
            context.pruned_branches += 1
            failure = terminal_result(failure_state, include_potential)
        else:
            failure = _evaluate_unit(tail, failure_state, failure_mass, context)

        cost = _stranding_cost(state, activation, success_state, failure_state)
        success = success.scaled(SUCCESS_PROBABILITY).prefixed(True)
        failure = failure.scaled(FAILURE_PROBABILITY).prefixed(False)
        result = EvaluationResult(
            expected_score=success.expected_score + (failure.expected_score - cost * FAILURE_PROBABILITY),
            expected_t3=success.expected_t3 + failure.expected_t3,
            expected_t4=success.expected_t4 + failure.expected_t4,
            probability=1.0,
            outcomes=success.outcomes + failure.outcomes,
        )

    context.cache[key] = result
    return result


def evaluate(sequence, state: GameState, probability: float = 1.0,
             context: Optional[PlanningContext] = None) -> EvaluationResult:
    """
    Expected outcome of playing sequence from state.

    Every resolved activation branches into success (60%) and failure (40%).
    Activations that are no longer legal when reached are skipped. The
    failure branch is charged the stranded-field cost when failing closes a
    plot that success would have kept open. Results are cached per
    (state, remaining sequence) at unit probability and rescaled on return.

    Args:
        sequence: Activations to play, in order
        state: State to start from
        probability: Mass of the branch being evaluated (1.0 at the root)
        context: Planning context holding config and cache; a fresh one if None

    Returns:
        EvaluationResult with all quantities scaled by probability

    Raises:
        InternalConsistencyError: if an activation targets a field not in state
    """
    context = context if context is not None else PlanningContext()
    context.evaluations += 1
    return _evaluate_unit(tuple(sequence), state, probability, context).scaled(probability)


# ── Planner ─────────────────────────────────────────────────────────────────

def _complete_result(state: GameState, config: PlannerConfig) -> PlanResult:
    return PlanResult(
        is_complete=True,
        state=state,
        next_activation=None,
        expected_score=terminal_result(state, include_future_potential=False).expected_score,
        available_activations=(),
        score_table={},
        best_sequence=(),
        best_result=None,
        bonuses={},
        diagnostics={
            "sequences_generated": 0,
            "sequences_evaluated": 0,
            "truncated": False,
            "cache_size": 0,
            "cache_hits": 0,
            "pruned_branches": 0,
            "lookahead_depth": config.lookahead_depth,
            "search_mode": config.search_mode,
            "heuristic_ordering": config.use_heuristic_ordering,
        },
    )


def plan(state: GameState, config: Optional[PlannerConfig] = None,
         context: Optional[PlanningContext] = None) -> PlanResult:
    """
    Recommend the next activation for state.

    Deep search scores every generated sequence (up to max_branching_factor)
    and credits each first move with its best plan. Single-step search scores
    each legal activation on its own. The strategic bonus of a sequence's
    first step is added to its score. The highest total wins; equal totals go
    to the sequence generated first, so heuristic ordering never changes the
    pick.

    Args:
        state: Current game state
        config: Search settings; defaults if None
        context: Optional context to reuse; its cache is cleared first

    Returns:
        PlanResult
    """
    config = config or (context.config if context is not None else PlannerConfig())
    if context is None:
        context = PlanningContext(config=config)
    else:
        context.config = config
        context.clear()

    available = legal_activations(state)
    if not available:
        return _complete_result(state, config)

    bonuses = strategic_bonuses(available, state)

    if config.enable_deep_search:
        batch = generate_sequences(available, config.lookahead_depth, config.max_branching_factor)
        candidates = list(enumerate(batch.sequences))
        truncated = batch.truncated
    else:
        candidates = list(enumerate((a,) for a in available))
        truncated = len(candidates) > config.max_branching_factor
    generated = len(candidates)

    if config.use_heuristic_ordering:
        ranked = order_sequences([seq for _, seq in candidates], state)
        order = {seq: i for i, seq in candidates}
        candidates = [(order[seq], seq) for seq in ranked]

    best = None  # (score, -generation_index, sequence, result)
    table_best = {}
    table_counts = {}
    evaluated = 0
    for index, sequence in candidates[:config.max_branching_factor]:
        result = evaluate(sequence, state, 1.0, context)
        evaluated += 1
        first = sequence[0]
        score = result.expected_score + bonuses.get(first.key, 0.0)
        rank = (score, -index)

        table_counts[first] = table_counts.get(first, 0) + 1
        current = table_best.get(first)
        if current is None or rank > current[0]:
            table_best[first] = (rank, sequence)
        if best is None or rank > best[0]:
            best = (rank, sequence, result)

    score_table = {}
    for activation in available:
        if activation not in table_best:
            continue
        (score, _), sequence = table_best[activation]
        score_table[activation] = ScoreEntry(
            score=score,
            evaluations=table_counts[activation],
            label=activation.label,
            best_sequence=sequence,
        )

    (best_score, _), best_sequence, best_result = best
    diagnostics = {
        "sequences_generated": generated,
        "sequences_evaluated": evaluated,
        "truncated": truncated,
        "cache_size": len(context.cache),
        "cache_hits": context.cache_hits,
        "pruned_branches": context.pruned_branches,
        "lookahead_depth": config.lookahead_depth,
        "search_mode": config.search_mode,
        "heuristic_ordering": config.use_heuristic_ordering,
    }
    logger.debug("Planned %s (score %.2f) from %d sequences, cache %d entries, %d hits",
                 best_sequence[0].label, best_score, evaluated,
                 diagnostics["cache_size"], diagnostics["cache_hits"])

    return PlanResult(
        is_complete=False,
        state=state,
        next_activation=best_sequence[0],
        expected_score=best_score,
        available_activations=tuple(available),
        score_table=score_table,
        best_sequence=best_sequence,
        best_result=best_result,
        bonuses=bonuses,
        diagnostics=diagnostics,
    )
