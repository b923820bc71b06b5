"""Module entrypoint for ``python -m snowyowl``."""

from __future__ import annotations

from snowyowl.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
