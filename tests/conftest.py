"""
snowyowl — shared pytest fixtures

File: tests/conftest.py

Purpose
- Isolate git from the developer's global config.
- Build throwaway repositories (optionally with a bare ``origin``), fake CLI
  executables on ``PATH`` and validated ``Settings`` trees.
"""

from __future__ import annotations

import os
import stat
import subprocess
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest

from snowyowl.config import Settings, default_config, merge_config, settings_from_config

GitRunner = Callable[..., subprocess.CompletedProcess[str]]


def _run_git(cwd: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=os.environ.copy(),
        text=True,
        capture_output=True,
        check=False,
    )
    if check and completed.returncode != 0:
        msg = (
            f"git command failed: git {' '.join(args)}\n"
            f"stdout:\n{completed.stdout}\nstderr:\n{completed.stderr}"
        )
        raise AssertionError(msg)
    return completed


@pytest.fixture(autouse=True)
def isolated_git_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_root = tmp_path_factory.mktemp("env")
    home = env_root / "home"
    xdg = env_root / "xdg"
    home.mkdir(exist_ok=True)
    xdg.mkdir(exist_ok=True)

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "SnowyOwl Tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@snowyowl.invalid")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "SnowyOwl Tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@snowyowl.invalid")
    monkeypatch.delenv("NO_COLOR", raising=False)
    for name in list(os.environ):
        if name.startswith("SNOWYOWL_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def run_git() -> GitRunner:
    return _run_git


@pytest.fixture
def make_repo(tmp_path: Path) -> Callable[..., Path]:
    """Factory for a repository on ``main`` with one commit.

    ``with_remote=True`` adds a bare ``origin`` and pushes ``main`` to it.
    """

    def factory(
        name: str = "repo",
        *,
        parent: Path | None = None,
        tasks: str | None = None,
        with_remote: bool = False,
    ) -> Path:
        root = parent if parent is not None else tmp_path / "root"
        repo = root / name
        repo.mkdir(parents=True)
        _run_git(repo, "init", "--quiet")
        _run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
        (repo / "README.md").write_text(f"# {name}\n", encoding="utf-8")
        if tasks is not None:
            (repo / "TASKS.md").write_text(tasks, encoding="utf-8")
        _run_git(repo, "add", "--all")
        _run_git(repo, "commit", "--quiet", "-m", "initial commit")

        if with_remote:
            remote = tmp_path / "remotes" / f"{name}.git"
            remote.parent.mkdir(parents=True, exist_ok=True)
            _run_git(tmp_path, "init", "--quiet", "--bare", str(remote))
            _run_git(repo, "remote", "add", "origin", str(remote))
            _run_git(repo, "push", "--quiet", "-u", "origin", "main")
        return repo

    return factory


@pytest.fixture
def fake_bin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[[str, str], Path]:
    """Install a ``/bin/sh`` script as ``name`` on a directory prepended to ``PATH``."""

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def install(name: str, script: str) -> Path:
        path = bin_dir / name
        path.write_text(f"#!/bin/sh\n{script}\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return install


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Validated settings rooted under ``tmp_path`` with the language model disabled."""

    def factory(overrides: Mapping[str, Any] | None = None) -> Settings:
        base: dict[str, Any] = {
            "paths": {
                "root": str(tmp_path / "root"),
                "workspaces_dir": str(tmp_path / "worktrees"),
                "log_dir": str(tmp_path / "logs"),
            },
            "git": {"remote_host": ""},
            "language_model": {"enabled": False},
            "publish": {"settle_seconds": 0.0},
        }
        config = merge_config(default_config(), base)
        if overrides:
            config = merge_config(config, overrides)
        return settings_from_config(config)

    return factory
