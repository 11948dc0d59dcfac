"""common-sync framework: logging, source cursors, pipeline orchestration."""
