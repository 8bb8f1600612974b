"""
Planner Test Suite

Sections:
    1. Configuration — validation, settings mapping
    2. Leaf values — terminal score, future potential, stranded-field cost
    3. Evaluator — chance nodes, scaling, skipping, cache, pruning
    4. Planner — recommendation, score table, bonuses, determinism
"""
from dataclasses import replace

import pytest

from garden_engine import (
    Activation, Color, ConfigurationError, GameState, InternalConsistencyError,
    apply_activation, legal_activations,
)
from planner import (
    MAX_LOOKAHEAD_DEPTH, PlannerConfig, PlanningContext,
    evaluate, future_potential, intrinsic_value, plan, stranded_field_cost, terminal_result,
)


# ── Helpers ──────────────────────────────────────────────────────────────────

def garden(*pairs):
    return GameState.create_initial(list(pairs))


def with_field(state, plot_index, field_index, **tiers):
    fields = list(state.fields)
    position = plot_index * 2 + field_index
    fields[position] = replace(fields[position], **tiers)
    return replace(state, fields=tuple(fields))


def act(state, plot_index, field_index):
    return Activation(plot_index=plot_index, color=state.field(plot_index, field_index).color,
                      field_index=field_index)


# ═══════════════════════════════════════════════════════════════════════════════
# 1. CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestPlannerConfig:

    def test_defaults(self):
        config = PlannerConfig()
        assert config.lookahead_depth == 3
        assert config.max_branching_factor == 500
        assert config.enable_deep_search is True
        assert config.probability_threshold == 0.0
        assert config.search_mode == "deep"

    @pytest.mark.parametrize("depth", [0, -1, MAX_LOOKAHEAD_DEPTH + 1])
    def test_depth_out_of_range(self, depth):
        with pytest.raises(ConfigurationError):
            PlannerConfig(lookahead_depth=depth)

    def test_max_depth_accepted(self):
        assert PlannerConfig(lookahead_depth=MAX_LOOKAHEAD_DEPTH).lookahead_depth == MAX_LOOKAHEAD_DEPTH

    def test_branching_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            PlannerConfig(max_branching_factor=0)

    @pytest.mark.parametrize("threshold", [-0.1, 1.0, 2.5])
    def test_threshold_range(self, threshold):
        with pytest.raises(ConfigurationError):
            PlannerConfig(probability_threshold=threshold)

    def test_from_settings_ignores_unknown_keys(self):
        config = PlannerConfig.from_settings({"lookahead_depth": 2, "starting_seed_count": 23, "theme": "x"})
        assert config.lookahead_depth == 2
        assert config.max_branching_factor == 500

    def test_from_settings_validates(self):
        with pytest.raises(ConfigurationError):
            PlannerConfig.from_settings({"lookahead_depth": 99})

    @pytest.mark.parametrize("name", ["enable_deep_search", "use_heuristic_ordering", "include_future_potential"])
    @pytest.mark.parametrize("value", ["false", 0, 1, None])
    def test_flags_must_be_bool(self, name, value):
        with pytest.raises(ConfigurationError, match=name):
            PlannerConfig(**{name: value})

    def test_single_step_mode_name(self):
        assert PlannerConfig(enable_deep_search=False).search_mode == "single-step"


# ═══════════════════════════════════════════════════════════════════════════════
# 2. LEAF VALUES
# ═══════════════════════════════════════════════════════════════════════════════

class TestLeafValues:

    def test_terminal_counts_tiers(self):
        state = with_field(garden("yellow/red"), 0, 0, t3=3, t4=2)
        result = terminal_result(state, include_future_potential=False)
        assert result.expected_score == 3 * 10 - 2 * 5
        assert result.expected_t3 == 3
        assert result.expected_t4 == 2
        assert result.probability == 1.0
        assert len(result.outcomes) == 1

    def test_initial_future_potential(self):
        # each field: 23 * 0.25 * 0.15 * 10 = 8.625, reached half of the time
        assert future_potential(garden("yellow/red")) == pytest.approx(8.625)
        assert terminal_result(garden("yellow/red")).expected_score == pytest.approx(8.625)

    def test_potential_can_be_switched_off(self):
        assert terminal_result(garden("yellow/red"), include_future_potential=False).expected_score == 0.0

    def test_potential_ignores_closed_plots(self):
        state = garden("yellow/red")
        state = apply_activation(state, act(state, 0, 0), False)
        assert future_potential(state) == 0.0

    def test_potential_ignores_used_fields(self):
        state = garden("yellow/yellow")
        state = apply_activation(state, act(state, 0, 0), True)
        assert future_potential(state) == pytest.approx(4.3125)

    def test_intrinsic_value(self):
        state = with_field(garden("yellow/red"), 0, 1, t2=10, t3=1)
        assert intrinsic_value(state.field(0, 1)) == pytest.approx(30.0)

    def test_stranded_cost_better_than_alternative(self):
        state = garden("yellow/red", "blue/red")
        state = with_field(state, 0, 1, t2=10, t3=1)
        state = with_field(state, 1, 1, t2=5)
        # one alternative: scarcity 1.5, well above the alternative: quality 1.5
        assert stranded_field_cost(state, state.field(0, 1)) == pytest.approx(67.5)

    def test_stranded_cost_equal_alternative(self):
        state = garden("yellow/red", "blue/red")
        state = with_field(state, 0, 1, t2=10, t3=1)
        state = with_field(state, 1, 1, t2=10, t3=1)
        assert stranded_field_cost(state, state.field(0, 1)) == pytest.approx(45.0)

    def test_stranded_cost_no_alternative(self):
        state = with_field(garden("yellow/red"), 0, 1, t2=6)
        # no alternative: scarcity 2.0, quality 1.5
        assert stranded_field_cost(state, state.field(0, 1)) == pytest.approx(36.0)

    def test_stranded_cost_zero_for_worthless_field(self):
        state = garden("yellow/red")
        assert stranded_field_cost(state, state.field(0, 1)) == 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# 3. EVALUATOR
# ═══════════════════════════════════════════════════════════════════════════════

class TestEvaluate:

    def test_single_activation_value(self):
        state = garden("yellow/red")
        result = evaluate((act(state, 0, 0),), state)
        # success: red field at (17, 6) -> potential 7.6875
        # failure: red field stranded, 2.0 * 1.5 * 12 = 36 charged at 40%
        assert result.expected_score == pytest.approx(0.6 * 7.6875 - 0.4 * 36)
        assert result.expected_score == pytest.approx(-9.7875)

    def test_outcomes_carry_paths(self):
        state = garden("yellow/red")
        result = evaluate((act(state, 0, 0),), state)
        assert [(o.probability, o.path) for o in result.outcomes] == [
            (pytest.approx(0.6), (True,)),
            (pytest.approx(0.4), (False,)),
        ]

    def test_outcome_probabilities_sum_to_mass(self):
        state = garden("yellow/red", "blue/red")
        seq = (act(state, 0, 0), act(state, 1, 0), act(state, 0, 1))
        result = evaluate(seq, state)
        assert sum(o.probability for o in result.outcomes) == pytest.approx(1.0)
        assert result.probability == pytest.approx(1.0)

    def test_scaled_by_probability(self):
        state = garden("yellow/red", "blue/red")
        seq = (act(state, 0, 0), act(state, 1, 1))
        full = evaluate(seq, state)
        half = evaluate(seq, state, probability=0.5)
        assert half.expected_score == pytest.approx(full.expected_score * 0.5)
        assert half.expected_t3 == pytest.approx(full.expected_t3 * 0.5)
        assert sum(o.probability for o in half.outcomes) == pytest.approx(0.5)

    def test_empty_sequence_is_terminal(self):
        state = garden("yellow/red")
        assert evaluate((), state).expected_score == pytest.approx(terminal_result(state).expected_score)

    def test_illegal_activations_skipped(self):
        state = garden("yellow/red", "blue/red")
        state = apply_activation(state, act(state, 0, 0), True)
        used = Activation(plot_index=0, color=Color.YELLOW, field_index=0)
        rest = (act(state, 1, 0),)
        assert evaluate((used,) + rest, state).expected_score == pytest.approx(
            evaluate(rest, state).expected_score)

    def test_failure_closes_rest_of_plot(self):
        state = garden("yellow/red")
        result = evaluate((act(state, 0, 0), act(state, 0, 1)), state)
        # success branch splits again, failure branch ends
        assert len(result.outcomes) == 3
        assert [o.path for o in result.outcomes] == [(True, True), (True, False), (False,)]

    def test_closed_plot_activation_skipped(self):
        state = garden("yellow/red", "blue/red")
        state = apply_activation(state, act(state, 0, 0), False)
        stranded = Activation(plot_index=0, color=Color.RED, field_index=1)
        rest = (act(state, 1, 0),)
        assert evaluate((stranded,) + rest, state) == evaluate(rest, state)

    def test_deterministic(self):
        state = garden("yellow/red", "blue/red", "yellow/blue")
        seq = tuple(legal_activations(state)[:3])
        assert evaluate(seq, state) == evaluate(seq, state)

    def test_cache_is_transparent(self):
        state = garden("yellow/red", "blue/red")
        seq = (act(state, 0, 0), act(state, 1, 0), act(state, 1, 1))
        context = PlanningContext()
        first = evaluate(seq, state, context=context)
        hits = context.cache_hits
        second = evaluate(seq, state, context=context)
        assert context.cache_hits == hits + 1
        assert second == first
        assert first == evaluate(seq, state)

    def test_cache_keys_independent_of_probability(self):
        state = garden("yellow/red")
        seq = (act(state, 0, 0),)
        context = PlanningContext()
        evaluate(seq, state, probability=1.0, context=context)
        size = len(context.cache)
        evaluate(seq, state, probability=0.3, context=context)
        assert len(context.cache) == size

    def test_threshold_prunes_small_branches(self):
        state = garden("yellow/red")
        seq = (act(state, 0, 0), act(state, 0, 1))
        context = PlanningContext(config=PlannerConfig(probability_threshold=0.7))
        result = evaluate(seq, state, context=context)
        # both root branches fall below 0.7 and are scored as leaves
        assert context.pruned_branches == 2
        assert len(result.outcomes) == 2
        assert sum(o.probability for o in result.outcomes) == pytest.approx(1.0)

    def test_zero_threshold_prunes_nothing(self):
        state = garden("yellow/red", "blue/red")
        context = PlanningContext()
        evaluate(tuple(legal_activations(state)[:3]), state, context=context)
        assert context.pruned_branches == 0

    def test_unknown_field_raises(self):
        state = garden("yellow/red")
        with pytest.raises(InternalConsistencyError):
            evaluate((Activation(plot_index=4, color=Color.RED, field_index=0),), state)


# ═══════════════════════════════════════════════════════════════════════════════
# 4. PLANNER
# ═══════════════════════════════════════════════════════════════════════════════

class TestPlan:

    def test_recommends_a_legal_activation(self):
        state = garden("yellow/red", "blue/red")
        result = plan(state)
        assert result.is_complete is False
        assert result.next_activation in legal_activations(state)
        assert result.best_sequence[0] == result.next_activation
        assert result.best_result is not None

    def test_score_table_covers_every_first_move(self):
        state = garden("yellow/red", "blue/red")
        result = plan(state)
        assert set(result.score_table) == set(legal_activations(state))
        best = max(entry.score for entry in result.score_table.values())
        assert result.expected_score == pytest.approx(best)
        assert result.score_table[result.next_activation].score == result.expected_score

    def test_score_table_counts_sequences(self):
        state = garden("yellow/red")
        result = plan(state, PlannerConfig(lookahead_depth=2))
        # each first move heads one single and one two-step sequence
        assert all(entry.evaluations == 2 for entry in result.score_table.values())
        assert result.diagnostics["sequences_evaluated"] == 4

    def test_complete_garden(self):
        state = garden("yellow/red")
        state = apply_activation(state, act(state, 0, 0), True)
        state = apply_activation(state, act(state, 0, 1), True)
        result = plan(state)
        assert result.is_complete is True
        assert result.next_activation is None
        assert result.score_table == {}
        assert result.expected_score == terminal_result(state, include_future_potential=False).expected_score

    def test_weaker_duplicate_plot_preferred(self):
        state = garden("yellow/red", "yellow/red", "yellow/red")
        result = plan(state)
        assert result.next_activation.plot_index == 2
        assert result.bonuses[(2, 0)] == 10.0

    def test_bonus_included_in_table_scores(self):
        state = garden("yellow/red", "yellow/red", "yellow/red")
        result = plan(state, PlannerConfig(enable_deep_search=False))
        plain = evaluate((act(state, 2, 0),), state).expected_score
        assert result.score_table[act(state, 2, 0)].score == pytest.approx(plain + 10.0)

    def test_heuristic_ordering_never_changes_pick(self):
        state = garden("yellow/red", "blue/red", "yellow/blue")
        ordered = plan(state, PlannerConfig(use_heuristic_ordering=True))
        unordered = plan(state, PlannerConfig(use_heuristic_ordering=False))
        assert ordered.next_activation == unordered.next_activation
        assert ordered.expected_score == unordered.expected_score
        assert ordered.best_sequence == unordered.best_sequence

    def test_single_step_mode(self):
        state = garden("yellow/red", "blue/red")
        result = plan(state, PlannerConfig(enable_deep_search=False))
        assert len(result.best_sequence) == 1
        assert result.diagnostics["sequences_evaluated"] == len(legal_activations(state))
        assert result.diagnostics["search_mode"] == "single-step"

    def test_branching_factor_bounds_work(self):
        state = garden("yellow/red", "blue/red", "yellow/blue")
        result = plan(state, PlannerConfig(max_branching_factor=5))
        assert result.diagnostics["sequences_evaluated"] <= 5
        assert result.diagnostics["truncated"] is True
        assert result.next_activation in legal_activations(state)

    def test_single_step_cap_reported(self):
        state = garden("yellow/red", "blue/red", "yellow/blue")
        result = plan(state, PlannerConfig(enable_deep_search=False, max_branching_factor=2))
        assert result.diagnostics["sequences_evaluated"] == 2
        assert len(result.score_table) == 2
        assert result.diagnostics["truncated"] is True

    def test_single_step_within_cap_not_truncated(self):
        state = garden("yellow/red", "blue/red", "yellow/blue")
        result = plan(state, PlannerConfig(enable_deep_search=False, max_branching_factor=6))
        assert len(result.score_table) == 6
        assert result.diagnostics["truncated"] is False

    def test_deterministic(self):
        state = garden("yellow/red", "blue/red", "yellow/blue")
        first, second = plan(state), plan(state)
        assert first.next_activation == second.next_activation
        assert first.expected_score == second.expected_score

    def test_context_cache_cleared_between_plans(self):
        context = PlanningContext()
        state = garden("yellow/red", "blue/red")
        plan(state, context=context)
        after_first = len(context.cache)
        next_state = apply_activation(state, act(state, 0, 0), True)
        result = plan(next_state, context=context)
        assert result.diagnostics["cache_size"] == len(context.cache)
        assert len(context.cache) < after_first

    def test_diagnostics_keys(self):
        result = plan(garden("yellow/red"))
        assert set(result.diagnostics) == {
            "sequences_generated", "sequences_evaluated", "truncated", "cache_size",
            "cache_hits", "pruned_branches", "lookahead_depth", "search_mode", "heuristic_ordering",
        }

    def test_does_not_modify_state(self):
        state = garden("yellow/red", "blue/red")
        before = state
        plan(state)
        assert state == before
