"""File-backed spec repository (``specs/backlog`` and ``specs/complete``)."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from specloop.schemas import PRD_FILENAME, SpecRef

logger = logging.getLogger(__name__)

BACKLOG_DIRNAME = "backlog"
COMPLETE_DIRNAME = "complete"

_DATED_FOLDER_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-(.+)$")


class SpecError(ValueError):
    """Base class for spec lookup failures."""


class SpecFolderNotFoundError(SpecError):
    """No backlog or complete folder matches the requested name."""


class SpecPrdMissingError(SpecError):
    """The spec folder exists but has no PRD file."""


class NoBacklogSpecsError(SpecError):
    """The backlog is empty."""


class FileSpecRepository:
    """Looks up specs under ``<root>/<specs_dir>/{backlog,complete}``."""

    def __init__(self, root: str | Path, specs_dir: str = "specs") -> None:
        self.root = Path(root).resolve()
        self.specs_path = self.root / specs_dir
        self.backlog_dir = self.specs_path / BACKLOG_DIRNAME
        self.complete_dir = self.specs_path / COMPLETE_DIRNAME

    def backlog_specs(self) -> list[str]:
        """Return backlog spec folder names, sorted."""
        if not self.backlog_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.backlog_dir.iterdir() if entry.is_dir())

    def require_backlog_specs(self) -> list[str]:
        specs = self.backlog_specs()
        if not specs:
            raise NoBacklogSpecsError(f"No specs found in {self.backlog_dir}")
        return specs

    def resolve(self, name: str) -> SpecRef:
        """Resolve *name* to a spec; exact matches win over date-prefixed ones."""
        folder = self._find_folder((name or "").strip())
        if folder is None:
            raise SpecFolderNotFoundError(f"Spec folder not found: {name}")
        spec = SpecRef.from_folder(folder)
        if not spec.prd_file_path.is_file():
            raise SpecPrdMissingError(f"{PRD_FILENAME} missing for spec: {name}")
        return spec

    def complete(self, spec: SpecRef) -> Path:
        """Move *spec* into the complete directory and return its new folder."""
        self.complete_dir.mkdir(parents=True, exist_ok=True)
        target = self.complete_dir / spec.folder_path.name
        if spec.folder_path.resolve() == target.resolve():
            return target
        if target.exists():
            raise SpecError(f"A completed spec named {target.name} already exists")
        shutil.move(str(spec.folder_path), str(target))
        logger.info("Moved spec %s to %s", spec.name, target)
        return target

    def _find_folder(self, name: str) -> Path | None:
        if not name or Path(name).name != name or name in {".", ".."}:
            return None
        for base in (self.backlog_dir, self.complete_dir):
            candidate = base / name
            if candidate.is_dir():
                return candidate

        for base in (self.backlog_dir, self.complete_dir):
            if not base.is_dir():
                continue
            for entry in sorted(base.iterdir()):
                if not entry.is_dir():
                    continue
                match = _DATED_FOLDER_RE.match(entry.name)
                if match and (match.group(1) == name or name in entry.name):
                    return entry
        return None
