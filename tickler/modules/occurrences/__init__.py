"""Occurrences module: recurrence projection, reconciliation and occurrence state."""
