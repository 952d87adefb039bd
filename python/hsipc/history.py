"""REPL history kept across ``hsipc`` runs.

Entries are code fragments and may span several lines, so the file holds one
JSON string per line rather than raw text.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from prompt_toolkit.history import History


LOGGER = logging.getLogger("hsipc.history")


class HistoryStore:
    def __init__(self, path: Optional[Path | str], *, limit: int = 1000) -> None:
        self.limit = max(1, int(limit or 1))
        self.path = Path(path).expanduser() if path else None
        self.entries: List[str] = []
        if self.path:
            self.entries = self._read()[-self.limit :]

    def _read(self) -> List[str]:
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            LOGGER.warning("could not read history %s: %s", self.path, exc)
            return []
        entries = []
        for line in lines:
            try:
                entry = json.loads(line)
            except ValueError:
                entry = line
            if not isinstance(entry, str):
                entry = line
            if entry.strip():
                entries.append(entry)
        return entries

    def record(self, fragment: str) -> bool:
        """Remember *fragment* unless it is blank or repeats the previous entry."""
        text = fragment.strip("\n")
        if not text.strip():
            return False
        if self.entries and self.entries[-1] == text:
            return False
        self.entries.append(text)
        del self.entries[: -self.limit]
        self._write()
        return True

    def _write(self) -> None:
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text("".join(json.dumps(entry) + "\n" for entry in self.entries), encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("could not save history %s: %s", self.path, exc)

    def seed(self, history: History) -> History:
        """Load the stored fragments into a prompt_toolkit history, oldest first."""
        for entry in self.entries:
            history.append_string(entry)
        return history

    def snapshot(self) -> List[str]:
        return list(self.entries)


__all__ = ["HistoryStore"]
