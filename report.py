"""Report — turns planner records into plain, JSON-serializable data.

Shared by every frontend (terminal advisor, web server, benchmark). Holds the
outcome labels and risk summary shown next to a recommendation, and the
snapshot functions that serialize states, plans and history. No frontend
dependency.
"""

from garden_engine import COLOR_EMOJIS, COLOR_NAMES, Activation, Color, total_t3, total_t4

TOP_OUTCOMES = 10


# ── Labels ───────────────────────────────────────────────────────────────────

def outcome_label(probability):
    """Describe how likely a single outcome branch is."""
    if probability > 0.3:
        return "High success"
    if probability > 0.1:
        return "Moderate success"
    return "Low probability"


def risk_level(outcomes):
    """Summarize how spread out an outcome distribution is."""
    if not outcomes or len(outcomes) <= 1:
        return "Low"
    max_prob = max(o.probability for o in outcomes)
    if max_prob > 0.6:
        return "Low - High success probability"
    if max_prob > 0.3:
        return "Moderate - Mixed outcomes"
    return "High - Many possible outcomes"


def top_outcomes(outcomes, limit=TOP_OUTCOMES):
    """Most likely outcomes first."""
    return sorted(outcomes, key=lambda o: o.probability, reverse=True)[:limit]


def plot_label(plot):
    """e.g. 'Plot 2 (🟡 🔴)'."""
    marks = " ".join(COLOR_EMOJIS[c] for c in plot.colors)
    return f"Plot {plot.index + 1} ({marks})"


# ── Serialization ────────────────────────────────────────────────────────────

def activation_to_dict(activation):
    if activation is None:
        return None
    return {
        "plot_index": activation.plot_index,
        "field_index": activation.field_index,
        "color": activation.color.value,
        "label": activation.label,
    }


def activation_from_dict(data):
    """Inverse of activation_to_dict(); returns None on malformed input."""
    try:
        return Activation(plot_index=int(data["plot_index"]),
                          color=Color(data["color"]),
                          field_index=int(data["field_index"]))
    except (KeyError, TypeError, ValueError):
        return None


def state_to_dict(state):
    """Serialize a GameState with per-field tiers and garden totals."""
    return {
        "starting_count": state.starting_count,
        "plots": [
            {
                "index": p.index,
                "label": plot_label(p),
                "colors": [c.value for c in p.colors],
                "active": p.active,
                "failed": p.failed,
                "used_fields": list(p.used_fields),
            }
            for p in state.plots
        ],
        "fields": [
            {
                "plot_index": f.plot_index,
                "field_index": f.field_index,
                "color": f.color.value,
                "color_name": COLOR_NAMES[f.color],
                "t1": f.t1, "t2": f.t2, "t3": f.t3, "t4": f.t4,
                "used": f.used,
            }
            for f in state.fields
        ],
        "total_t3": total_t3(state),
        "total_t4": total_t4(state),
    }


def outcome_to_dict(outcome):
    return {
        "probability": outcome.probability,
        "total_t3": outcome.total_t3,
        "total_t4": outcome.total_t4,
        "score": outcome.score,
        "path": ["success" if ok else "failure" for ok in outcome.path],
        "scenario": outcome_label(outcome.probability),
    }


def plan_to_dict(result):
    """Serialize a PlanResult for display and alternative analysis."""
    score_table = [
        {
            "activation": activation_to_dict(activation),
            "score": entry.score,
            "evaluations": entry.evaluations,
            "label": entry.label,
            "best_sequence": [activation_to_dict(a) for a in entry.best_sequence],
        }
        for activation, entry in sorted(result.score_table.items(),
                                        key=lambda item: item[1].score, reverse=True)
    ]
    data = {
        "is_complete": result.is_complete,
        "next_activation": activation_to_dict(result.next_activation),
        "expected_score": result.expected_score,
        "available_activations": [activation_to_dict(a) for a in result.available_activations],
        "score_table": score_table,
        "best_sequence": [activation_to_dict(a) for a in result.best_sequence],
        "bonuses": [
            {"plot_index": plot, "field_index": slot, "bonus": bonus}
            for (plot, slot), bonus in sorted(result.bonuses.items())
        ],
        "diagnostics": dict(result.diagnostics),
        "state": state_to_dict(result.state),
    }
    if result.best_result is not None:
        outcomes = result.best_result.outcomes
        data["expected_t3"] = result.best_result.expected_t3
        data["expected_t4"] = result.best_result.expected_t4
        data["risk_level"] = risk_level(outcomes)
        data["outcomes"] = [outcome_to_dict(o) for o in top_outcomes(outcomes)]
    return data


def record_to_dict(record):
    upgrades = {}
    for (plot, slot), totals in (record.actual_upgrades or {}).items():
        upgrades[f"{plot}:{slot}"] = {"t2": totals.t2, "t3": totals.t3, "t4": totals.t4}
    return {
        "activation": activation_to_dict(record.activation),
        "success": record.success,
        "actual_upgrades": upgrades or None,
    }


def history_to_dict(history):
    return [record_to_dict(r) for r in history.records]


def parse_upgrade_keys(raw):
    """Turn {'1:0': {...}} or [{'plot_index':..,'field_index':..,...}] into {(1, 0): {...}}.

    Entries with unusable keys are dropped.
    """
    if not raw or not isinstance(raw, (dict, list)):
        return {}
    parsed = {}
    items = raw.items() if isinstance(raw, dict) else (
        ((e.get("plot_index"), e.get("field_index")), e) for e in raw if isinstance(e, dict))
    for key, totals in items:
        try:
            if isinstance(key, str):
                plot, slot = key.split(":")
            else:
                plot, slot = key
            parsed[(int(plot), int(slot))] = totals
        except (TypeError, ValueError):
            continue
    return parsed
