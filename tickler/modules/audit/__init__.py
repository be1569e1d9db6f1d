"""Audit module: append-only record of task and occurrence mutations."""
