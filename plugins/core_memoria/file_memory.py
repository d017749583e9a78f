# plugins/core_memoria/file_memory.py
"""
File-backed memory: human-readable daily markdown logs (`YYYY-MM-DD.md`)
plus an `index.json` used for lookup. The files can be edited by hand or
tracked in git.
"""
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from .contracts import FileMemoryIndex
from .models import FileIndexEntry, MemoryEntry, MemoryScope

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100
_DATE_FILE = re.compile(r"^\d{4}-\d{2}-\d{2}\.md$")


class _IndexDocument(BaseModel):
    entries: List[FileIndexEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MarkdownFileMemory(FileMemoryIndex):
    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.index_path = self.base_dir / "index.json"
        self._index = self._load_index()

    # --- writing ---

    def write(self, entry: MemoryEntry) -> None:
        """Append an entry to the log of its creation date and index it."""
        date = entry.created_at.strftime("%Y-%m-%d")
        path = self.base_dir / f"{date}.md"

        tags = [f"category:{entry.category.value}", f"scope:{entry.scope.value}"]
        if entry.source_id:
            tags.append(f"source:{entry.source_id}")
        if entry.auto_captured:
            tags.append("auto")
        tags.append(f"importance:{(entry.importance if entry.importance is not None else 0.5):.2f}")

        block = "\n".join([
            f"### [{entry.created_at.isoformat()}] {entry.category.value}",
            f"> ID: {entry.id} | Tags: {', '.join(tags)}",
            "",
            entry.content,
            "",
            "---",
            "",
        ])
        existing = path.read_text(encoding="utf-8") if path.exists() else f"# Memory Log - {date}\n\n"
        path.write_text(existing + block, encoding="utf-8")

        self._index.entries.append(FileIndexEntry(
            id=entry.id,
            date=date,
            category=entry.category,
            scope=entry.scope,
            source_id=entry.source_id,
            preview=entry.content[:PREVIEW_LENGTH],
            created_at=entry.created_at,
        ))
        self._save_index()
        logger.info(f"Memory {entry.id} written to {path.name}")

    def delete_entry(self, id: str) -> bool:
        """Drop an entry from the index. The markdown log is left as is."""
        before = len(self._index.entries)
        self._index.entries = [e for e in self._index.entries if e.id != id]
        if len(self._index.entries) == before:
            return False
        self._save_index()
        return True

    # --- reading ---

    def read_date(self, date: str) -> Optional[str]:
        path = self.base_dir / f"{date}.md"
        return path.read_text(encoding="utf-8") if path.exists() else None

    def list_dates(self) -> List[str]:
        return sorted((p.stem for p in self.base_dir.iterdir() if _DATE_FILE.match(p.name)), reverse=True)

    def count(self) -> int:
        return len(self._index.entries)

    def get_entry_content(self, id: str) -> Optional[str]:
        record = next((e for e in self._index.entries if e.id == id), None)
        if record is None:
            return None
        text = self.read_date(record.date)
        if text is None:
            return None
        match = re.search(
            rf"### \[.*?\].*?\n> ID: {re.escape(id)}.*?\n\n([\s\S]*?)\n---",
            text,
            re.MULTILINE,
        )
        return match.group(1).strip() if match else None

    def search(
        self, query: str, scope: Optional[MemoryScope] = None, source_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[FileIndexEntry]:
        needle = query.lower()

        def matches(e: FileIndexEntry) -> bool:
            if scope is not None and e.scope != MemoryScope(scope):
                return False
            if source_id is not None and e.source_id != source_id:
                return False
            if needle in e.preview.lower():
                return True
            full = self.get_entry_content(e.id)
            return full is not None and needle in full.lower()

        hits = sorted(filter(matches, self._index.entries), key=lambda e: e.created_at, reverse=True)
        return hits[:limit or 20]

    # --- index persistence ---

    def _load_index(self) -> _IndexDocument:
        if self.index_path.exists():
            try:
                return _IndexDocument.model_validate_json(self.index_path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.warning(f"Failed to load memory index, starting a new one: {e}")
        return _IndexDocument()

    def _save_index(self) -> None:
        self._index.last_updated = datetime.now(timezone.utc)
        try:
            self.index_path.write_text(self._index.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save memory index: {e}")
