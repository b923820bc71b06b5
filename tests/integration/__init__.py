"""
snowyowl — integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker for end-to-end runs over real git repositories.
- Must not trigger network access; remotes are local bare repositories.
"""
