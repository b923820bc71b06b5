"""
snowyowl — overnight task-list automation for git repositories.

Reads ``TASKS.md`` checklists, implements each top-level task group in its own
git worktree through a pluggable code-generation CLI, commits the result and
optionally opens a pull request.

Importing the package has no side effects (no config loading, no logging setup).
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
