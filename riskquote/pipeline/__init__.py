"""Event-driven recompute pipeline."""
