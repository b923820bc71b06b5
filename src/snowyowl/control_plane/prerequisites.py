"""Run-level tool checks shared by ``snowyowl run`` and ``snowyowl doctor``."""

from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from snowyowl.errors import PrerequisiteError
from snowyowl.integration_plane.publish import GitHubCli
from snowyowl.synthesis_plane.backends import get_backend, is_required

if TYPE_CHECKING:
    from snowyowl.config.settings import Settings


@dataclass(frozen=True, slots=True)
class PrerequisiteCheck:
    name: str
    ok: bool
    required: bool
    detail: str


@dataclass(frozen=True, slots=True)
class PrerequisiteReport:
    checks: tuple[PrerequisiteCheck, ...]

    @property
    def failures(self) -> tuple[PrerequisiteCheck, ...]:
        return tuple(check for check in self.checks if check.required and not check.ok)

    @property
    def ok(self) -> bool:
        return not self.failures


def pull_requests_enabled(settings: Settings) -> bool:
    return settings.publish.create_pr and not settings.run.dry_run


def check_prerequisites(
    settings: Settings,
    *,
    which: Callable[[str], str | None] = shutil.which,
    hosting: GitHubCli | None = None,
) -> PrerequisiteReport:
    """Probe every external tool; never raises."""

    checks: list[PrerequisiteCheck] = []

    git_path = which("git")
    checks.append(
        PrerequisiteCheck(
            name="git",
            ok=git_path is not None,
            required=True,
            detail=f"found at {git_path}" if git_path else "not found on PATH",
        )
    )

    gh = hosting if hosting is not None else GitHubCli(which=which)
    gh_required = pull_requests_enabled(settings)
    gh_path = gh.executable_path()
    checks.append(
        PrerequisiteCheck(
            name=gh.executable,
            ok=gh_path is not None,
            required=gh_required,
            detail=(
                f"found at {gh_path}"
                if gh_path
                else "not found on PATH; install GitHub CLI: https://cli.github.com"
            ),
        )
    )
    if gh_path is not None and gh_required:
        auth = gh.auth_status()
        checks.append(
            PrerequisiteCheck(
                name=f"{gh.executable} auth",
                ok=auth.returncode == 0,
                required=True,
                detail="authenticated" if auth.returncode == 0 else "not logged in; run: gh auth login",
            )
        )

    lm = settings.language_model
    if lm.enabled:
        lm_path = which(lm.executable)
        checks.append(
            PrerequisiteCheck(
                name=lm.executable,
                ok=lm_path is not None,
                required=False,
                detail=(
                    f"found at {lm_path} (model {lm.model})"
                    if lm_path
                    else "not found; deterministic fallbacks will be used"
                ),
            )
        )

    backend = get_backend(settings.backend.name)
    executable = settings.backend.selected.executable
    backend_path = which(executable)
    required = is_required(backend, settings.backend.availability)
    if backend_path:
        backend_detail = f"found at {backend_path}"
    elif required:
        backend_detail = f"{executable} not found on PATH; {backend.install_hint}"
    else:
        backend_detail = f"{executable} not found; pending-task markers will be written"
    checks.append(
        PrerequisiteCheck(
            name=f"backend:{backend.name}",
            ok=backend_path is not None or not required,
            required=False,
            detail=backend_detail,
        )
    )

    return PrerequisiteReport(checks=tuple(checks))


def require_prerequisites(report: PrerequisiteReport, *, logger: Any | None = None) -> None:
    """Raise ``PrerequisiteError`` naming every failed required check."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    for check in report.checks:
        if not check.ok:
            log.warning(
                "prerequisite_missing", check=check.name, required=check.required, detail=check.detail
            )
    failures = report.failures
    if failures:
        summary = "; ".join(f"{check.name}: {check.detail}" for check in failures)
        raise PrerequisiteError(f"missing prerequisites: {summary}")


__all__ = [
    "PrerequisiteCheck",
    "PrerequisiteReport",
    "check_prerequisites",
    "pull_requests_enabled",
    "require_prerequisites",
]
