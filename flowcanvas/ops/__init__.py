"""Graph file operations (outside the pure core, which does no I/O)."""
