"""specks - worktree lifecycle and beads reconciliation for speck-driven development."""

__version__ = "0.1.0"
