"""Beads — shutdown of the issue-tracker's background processes."""
