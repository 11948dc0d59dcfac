"""Domain pipelines built on the sync engine."""
