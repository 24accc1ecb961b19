"""
Persisted enable/disable selection of discovered scripts.

File layout (script-selection.json):

    {
      "updatedAt": "2025-01-31T12:00:00+00:00",
      "scripts": [
        {"id": "ABC123", "slug": "my-slug", "title": "...", "url": "...", "enabled": false},
        ...
      ]
    }

Entries are keyed by id, falling back to url when no id could be parsed.
Only refresh() writes the file; grant runs read it and never modify it.
"""

import json
import os
import stat
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .refs import ResourceRef


@dataclass
class SelectionEntry:
    id: str = ""
    slug: str = ""
    title: str = ""
    url: str = ""
    enabled: bool = False

    @property
    def key(self) -> str:
        return self.id or self.url

    def to_ref(self, index: int = -1) -> ResourceRef:
        return ResourceRef(id=self.id, slug=self.slug, title=self.title, url=self.url, index=index)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "url": self.url,
            "enabled": self.enabled,
        }

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "SelectionEntry":
        return cls(
            id=str(raw.get("id") or ""),
            slug=str(raw.get("slug") or ""),
            title=str(raw.get("title") or ""),
            url=str(raw.get("url") or ""),
            enabled=bool(raw.get("enabled")),
        )

    @classmethod
    def from_ref(cls, ref: ResourceRef, enabled: bool = False) -> "SelectionEntry":
        return cls(id=ref.id, slug=ref.slug, title=ref.title, url=ref.url, enabled=enabled)


@dataclass
class SelectionFile:
    updated_at: str = ""
    scripts: List[SelectionEntry] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {"updatedAt": self.updated_at, "scripts": [s.to_json() for s in self.scripts]}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def reconcile(discovered: Iterable[ResourceRef], previous: SelectionFile) -> List[SelectionEntry]:
    """
    Merge a fresh discovery with a previous selection.

    Known scripts keep their enabled flag, new ones start disabled and scripts
    that were not discovered again are dropped. Order follows discovery.
    """
    prev = {e.key: e for e in previous.scripts if e.key}
    merged: List[SelectionEntry] = []
    seen = set()
    for ref in discovered:
        key = ref.key
        if not key or key in seen:
            continue
        seen.add(key)
        old = prev.get(key)
        merged.append(SelectionEntry.from_ref(ref, enabled=bool(old and old.enabled)))
    return merged


class SelectionStore:
    def __init__(self, path=config.SELECTION_FILE):
        self.path = Path(path)
        self._loaded: Optional[SelectionFile] = None

    def load(self) -> SelectionFile:
        """Read the selection file; a missing or corrupt file is an empty selection."""
        selection = SelectionFile()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raw = None
        except (OSError, ValueError) as e:
            print(f"[selection] ⚠️  Ignoring unreadable {self.path}: {e}", file=sys.stderr)
            raw = None

        if isinstance(raw, dict):
            selection.updated_at = str(raw.get("updatedAt") or "")
            for item in raw.get("scripts") or []:
                if isinstance(item, dict):
                    selection.scripts.append(SelectionEntry.from_json(item))
        self._loaded = selection
        return selection

    @property
    def current(self) -> SelectionFile:
        if self._loaded is None:
            return self.load()
        return self._loaded

    def reconcile(self, discovered: Iterable[ResourceRef],
                  previous: Optional[SelectionFile] = None) -> List[SelectionEntry]:
        return reconcile(discovered, previous if previous is not None else self.load())

    def _file_mode(self) -> int:
        try:
            return stat.S_IMODE(os.stat(self.path).st_mode)
        except FileNotFoundError:
            # mkstemp creates 0600; a new file gets the usual umask-based mode
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask

    def save(self, entries: Iterable[SelectionEntry], now: Optional[str] = None) -> SelectionFile:
        """
        Overwrite the selection file in one replace.

        Args:
            entries: the full list of entries to persist, in file order.
            now: ISO-8601 timestamp for `updatedAt`; defaults to the current UTC time.

        Returns:
            The SelectionFile that was written.

        Raises:
            OSError: the file could not be written; the previous file is left intact.
        """
        selection = SelectionFile(updated_at=now or now_iso(), scripts=list(entries))
        payload = json.dumps(selection.to_json(), indent=2, ensure_ascii=False)

        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        mode = self._file_mode()
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(directory))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        self._loaded = selection
        return selection

    def refresh(self, discovered: Iterable[ResourceRef], now: Optional[str] = None) -> List[SelectionEntry]:
        """
        Merge a fresh discovery into the file and write it.

        Args:
            discovered: scripts found on the profile, in page order.
            now: timestamp for `updatedAt`; defaults to the current UTC time.

        Returns:
            The merged entries as written.
        """
        merged = self.reconcile(discovered)
        self.save(merged, now=now)
        enabled = sum(1 for e in merged if e.enabled)
        print(f"[selection] Updated {self.path} ({len(merged)} script(s), {enabled} enabled)")
        return merged

    def lookup(self) -> Dict[str, SelectionEntry]:
        """id -> entry and url -> entry for the loaded selection."""
        index: Dict[str, SelectionEntry] = {}
        for entry in self.current.scripts:
            if entry.id:
                index[entry.id] = entry
            if entry.url:
                index[entry.url] = entry
        return index

    def enabled(self) -> List[SelectionEntry]:
        return [e for e in self.current.scripts if e.enabled]
