"""Command-line interface router for snowyowl."""

from __future__ import annotations

import argparse
import json
import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from snowyowl import __version__
from snowyowl.config import dump_effective_config, load_config, settings_from_config
from snowyowl.config.settings import Settings
from snowyowl.constants import BACKEND_NAMES
from snowyowl.control_plane import Orchestrator, check_prerequisites
from snowyowl.integration_plane import WorkspaceManager
from snowyowl.observability import (
    configure_structlog,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from snowyowl.planning import TaskParser, group_tasks
from snowyowl.synthesis_plane import LanguageModelClient
from snowyowl.ui.render import CLIRenderer, create_renderer

RUN_ID_TIME_FORMAT: Final[str] = "%Y%m%dT%H%M%SZ"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="snowyowl",
        description=(
            "snowyowl: overnight task automation across git repositories.\n\n"
            "Common workflows:\n"
            "  snowyowl run --dry-run       Parse tasks and run backends without committing\n"
            "  snowyowl run -p              Implement tasks, push and open pull requests\n"
            "  snowyowl doctor              Check that required tools are installed\n"
            "  snowyowl gc                  Remove leftover worktrees\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"snowyowl {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to snowyowl TOML config (default: ./snowyowl.toml if present).",
    )
    common.add_argument(
        "--root",
        "-r",
        default=None,
        help="Directory whose child repositories are processed (default: ~/aves).",
    )
    common.add_argument(
        "--repo",
        dest="repos",
        action="append",
        default=None,
        metavar="NAME",
        help="Restrict to the named repository; may be repeated.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Process every repository's task list",
        description=(
            "Parse TASKS.md in each repository, implement every task group on its own\n"
            "branch and optionally push and open a pull request.\n\n"
            "Examples:\n"
            "  snowyowl run --dry-run\n"
            "  snowyowl run -B claude -m claude-sonnet-4-5 --create-pr\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("--base-branch", "-b", default=None, help="Base branch for new branches.")
    run_parser.add_argument(
        "--backend", "-B", choices=BACKEND_NAMES, default=None, help="Code-generation backend."
    )
    run_parser.add_argument("--model", "-m", default=None, help="Model passed to the backend.")
    run_parser.add_argument(
        "--create-pr",
        "-p",
        action="store_true",
        default=None,
        help="Push branches and open pull requests.",
    )
    run_parser.add_argument(
        "--dry-run",
        "-d",
        action="store_true",
        default=None,
        help="Run backends but do not commit, push or open pull requests.",
    )
    run_parser.add_argument(
        "--cleanup-worktrees",
        action="store_true",
        default=None,
        help="Remove each worktree after its group finishes (branches are kept).",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # gc ------------------------------------------------------------------
    gc_parser = subparsers.add_parser(
        "gc",
        parents=[common],
        help="Remove leftover worktrees for each repository",
    )
    gc_parser.set_defaults(handler=_cmd_gc)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check prerequisites and backend availability",
    )
    doctor_parser.add_argument(
        "--create-pr",
        "-p",
        action="store_true",
        default=None,
        help="Also require the tools needed for pull requests.",
    )
    doctor_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration as JSON",
    )
    config_parser.set_defaults(handler=_cmd_config)

    # parse ---------------------------------------------------------------
    parse_parser = subparsers.add_parser(
        "parse",
        parents=[common],
        help="Print the task groups parsed from a task list",
    )
    parse_parser.add_argument("path", help="Path to a TASKS.md file or a repository directory.")
    parse_parser.add_argument(
        "--use-language-model",
        action="store_true",
        default=False,
        help="Ask the language model first instead of only using the checklist scan.",
    )
    parse_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    parse_parser.set_defaults(handler=_cmd_parse)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    # stdout carries command output only; component events go through stdlib logging.
    configure_structlog()
    try:
        return int(args.handler(args))
    except CLIError as exc:
        create_renderer(no_color=True).fail(exc.message)
        return exc.exit_code


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    renderer = _get_renderer(args)
    run_id = _new_run_id()

    handle = setup_logging(settings.observability, run_id=run_id, log_dir=settings.paths.log_dir)
    try:
        with correlation_scope(run_id=run_id):
            orchestrator = Orchestrator(settings, log_dir=handle.run_log_dir)
            report = orchestrator.run(repositories=args.repos)
    finally:
        shutdown_logging(handle)

    renderer.run_report(report)
    renderer.kv("Logs", handle.run_log_dir)
    return 0 if report.succeeded else 1


def _cmd_gc(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    renderer = _get_renderer(args)
    orchestrator = Orchestrator(settings)
    manager: WorkspaceManager = orchestrator.workspaces

    renderer.heading(f"Sweeping worktrees under {manager.workspaces_dir}")
    total = 0
    for repository in orchestrator.discover_repositories(args.repos):
        removed = manager.bulk_cleanup(repository)
        total += len(removed)
        if removed:
            renderer.section(repository.name)
            renderer.items([str(path) for path in removed])
    renderer.text(f"\nRemoved {total} worktree(s).")
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    report = check_prerequisites(settings)

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "doctor",
                "ok": report.ok,
                "checks": [
                    {
                        "name": check.name,
                        "status": "ok" if check.ok else "fail",
                        "required": check.required,
                        "detail": check.detail,
                    }
                    for check in report.checks
                ],
            }
        )
        return 0 if report.ok else 3

    renderer = _get_renderer(args)
    renderer.heading("snowyowl doctor")
    renderer.prerequisites(report)
    renderer.text("\nAll required checks passed." if report.ok else "\nSome required checks failed.")
    return 0 if report.ok else 3


def _cmd_config(args: argparse.Namespace) -> int:
    config = load_config(args.config_path, cli_overrides=_cli_overrides(args))
    _get_renderer(args).text(dump_effective_config(config, indent=2))
    return 0


def _cmd_parse(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    target = Path(args.path).expanduser()
    if target.is_dir():
        target = target / settings.paths.tasks_file
    if not target.is_file():
        raise CLIError(f"task list not found: {target}", exit_code=2)

    language_model = (
        LanguageModelClient(settings.language_model)
        if _flag(args, "use_language_model") and settings.language_model.enabled
        else None
    )
    parser = TaskParser(language_model=language_model)
    groups = group_tasks(parser.parse(target.read_text(encoding="utf-8", errors="replace")))

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "parse",
                "path": str(target),
                "groups": [
                    {
                        "lead": group.lead_task.title,
                        "tasks": [
                            {
                                "title": task.title,
                                "depth": task.depth,
                                "specification": task.specification_link,
                            }
                            for task in group.tasks
                        ],
                    }
                    for group in groups
                ],
            }
        )
        return 0

    _get_renderer(args).task_groups(groups)
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: Mapping[str, object] = {
        "paths.root": _absolute(getattr(args, "root", None)),
        "git.base_branch": getattr(args, "base_branch", None),
        "backend.name": getattr(args, "backend", None),
        "backend.model": getattr(args, "model", None),
        "publish.create_pr": getattr(args, "create_pr", None),
        "publish.cleanup_workspaces": getattr(args, "cleanup_worktrees", None),
        "run.dry_run": getattr(args, "dry_run", None),
    }
    return {key: value for key, value in overrides.items() if value is not None}


def _absolute(raw: str | None) -> str | None:
    if raw is None:
        return None
    return str(Path(raw).expanduser().resolve())


def _load_settings(args: argparse.Namespace) -> Settings:
    config = load_config(args.config_path, cli_overrides=_cli_overrides(args))
    return settings_from_config(config)


def _new_run_id() -> str:
    stamp = datetime.now(tz=UTC).strftime(RUN_ID_TIME_FORMAT)
    return f"{stamp}-{secrets.token_hex(3)}"


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"))


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
