"""
snowyowl — linked specification loader

File: src/snowyowl/spec_ingestion/spec_loader.py

Purpose
- Resolve a task's ``[text](path.md)`` link against the repository root and read
  the file as bounded text for prompt construction.

Functional requirements
- ``/abs``, ``./rel`` and ``rel`` forms all resolve inside the repository root;
  an OS-absolute path is treated as rooted at the repository.
- Paths that escape the repository root (``..``, symlinks) are rejected.
- Missing or unreadable files yield empty content and a warning.
- Content above the size cap is truncated with a warning; never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from snowyowl.constants import SPECIFICATION_MAX_BYTES
from snowyowl.utils.fs import contained_path


@dataclass(frozen=True, slots=True)
class LoadedSpecification:
    """Specification text plus how it was obtained."""

    link: str
    content: str
    path: Path | None = None
    truncated: bool = False

    @property
    def available(self) -> bool:
        return bool(self.content.strip())


class SpecificationLoader:
    """Read linked specification files from inside one repository."""

    def __init__(
        self,
        *,
        max_bytes: int = SPECIFICATION_MAX_BYTES,
        logger: Any | None = None,
    ) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self._max_bytes = max_bytes
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def resolve(self, repository_root: Path | str, link: str) -> Path | None:
        """Return the contained absolute path for ``link`` or ``None`` when it escapes."""

        relative = link.strip().lstrip("/")
        if not relative or "\x00" in relative:
            return None
        return contained_path(repository_root, relative)

    def load(self, repository_root: Path | str, link: str) -> LoadedSpecification:
        resolved = self.resolve(repository_root, link)
        if resolved is None:
            self._logger.warning(
                "specification_path_rejected",
                link=link,
                reason="path escapes repository root",
            )
            return LoadedSpecification(link=link, content="")

        if not resolved.is_file():
            self._logger.warning("specification_not_found", link=link, path=str(resolved))
            return LoadedSpecification(link=link, content="", path=resolved)

        try:
            with resolved.open("rb") as handle:
                raw = handle.read(self._max_bytes + 1)
        except OSError as exc:
            self._logger.warning("specification_unreadable", link=link, error=str(exc))
            return LoadedSpecification(link=link, content="", path=resolved)

        truncated = len(raw) > self._max_bytes
        if truncated:
            size = resolved.stat().st_size
            self._logger.warning(
                "specification_truncated",
                link=link,
                size_bytes=size,
                max_bytes=self._max_bytes,
            )
            raw = raw[: self._max_bytes]

        content = raw.decode("utf-8", errors="replace")
        self._logger.info(
            "specification_loaded",
            link=link,
            lines=len(content.splitlines()),
            bytes=len(raw),
        )
        return LoadedSpecification(link=link, content=content, path=resolved, truncated=truncated)


__all__ = ["LoadedSpecification", "SpecificationLoader"]
