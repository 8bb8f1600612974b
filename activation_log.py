"""Activation history for the crop rotation advisor — records every confirmed
activation and rebuilds state for undo.

Pure Python, no UI dependency. Undo never reverses a transition: observed
upgrade totals cannot be inverted, so the state is always rebuilt by
replaying the remaining records from the initial state.
"""
from __future__ import annotations

from dataclasses import dataclass

from garden_engine import Activation, Field, GameState, TierTotals, apply_activation, parse_tier_totals
from report import parse_upgrade_keys


@dataclass(frozen=True)
class ActivationRecord:
    """A single confirmed activation."""
    activation: Activation
    success: bool
    actual_upgrades: dict[tuple[int, int], TierTotals] | None = None
    fields_before: tuple[Field, ...] = ()       # snapshot for audit


def replay(initial_state: GameState, records) -> GameState:
    """Apply records in order starting from initial_state."""
    state = initial_state
    for record in records:
        state = apply_activation(state, record.activation, record.success, record.actual_upgrades)
    return state


class ActivationHistory:
    """Append-only list of ActivationRecords anchored to an initial state."""

    def __init__(self, initial_state: GameState) -> None:
        self.initial_state = initial_state
        self.records: list[ActivationRecord] = []

    def record(self, state: GameState, activation: Activation, success: bool,
               actual_upgrades: dict | None = None) -> ActivationRecord:
        """Append a record for an activation taken from state and return it."""
        upgrades = {key: parse_tier_totals(totals)
                    for key, totals in parse_upgrade_keys(actual_upgrades).items()} or None
        entry = ActivationRecord(
            activation=activation,
            success=success,
            actual_upgrades=upgrades,
            fields_before=state.fields,
        )
        self.records.append(entry)
        return entry

    def current_state(self) -> GameState:
        """Rebuild the state after every recorded activation."""
        return replay(self.initial_state, self.records)

    def undo(self) -> GameState | None:
        """Drop the last record and return the rebuilt state, or None if there is nothing to undo."""
        if not self.records:
            return None
        self.records.pop()
        return self.current_state()

    def can_undo(self) -> bool:
        return bool(self.records)

    def clear(self, initial_state: GameState | None = None) -> None:
        """Remove all records, optionally re-anchoring to a new initial state."""
        if initial_state is not None:
            self.initial_state = initial_state
        self.records = []

    def __len__(self) -> int:
        return len(self.records)
