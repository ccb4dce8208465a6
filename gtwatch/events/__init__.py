"""Events — the append-only audit/feed log."""
