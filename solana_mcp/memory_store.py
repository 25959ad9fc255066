"""
Append-only per-agent execution log persisted as a single JSON document.

The whole store is read once at construction and rewritten on every save.
Writes go through one ``asyncio.Lock`` and land via temp file + ``os.replace``,
so concurrent saves from the same event loop never drop records and a crash
mid-write never leaves a truncated file behind.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class MemoryStoreError(Exception):
    """Raised when the persisted store cannot be read or written."""


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class MemoryStore:
    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._db: Dict[str, List[Dict[str, Any]]] = self._load()

    def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise MemoryStoreError(f"Unable to read memory store at {self.path}") from exc
        if not isinstance(raw, dict):
            raise MemoryStoreError(f"Memory store at {self.path} is not a JSON object")
        return {str(agent): list(records) for agent, records in raw.items() if isinstance(records, list)}

    def _write_file(self, snapshot: Dict[str, List[Dict[str, Any]]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, indent=2, default=str)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    async def save(self, agent_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Append ``record`` for ``agent_id`` and persist the whole store before returning."""
        entry = dict(record)
        entry.setdefault("timestamp", utc_timestamp())
        async with self._lock:
            self._db.setdefault(agent_id, []).append(entry)
            try:
                snapshot = copy.deepcopy(self._db)
                await asyncio.to_thread(self._write_file, snapshot)
            except Exception as exc:
                # Unencodable records (non-str keys, cycles) must not stay queued.
                self._db[agent_id].pop()
                if not self._db[agent_id]:
                    del self._db[agent_id]
                logger.error(
                    "memory store write failed agent_id=%s path=%s",
                    agent_id,
                    self.path,
                    extra={"agent_id": agent_id, "error": str(exc)},
                )
                raise MemoryStoreError(f"Unable to write memory store at {self.path}") from exc
        return entry

    async def get(self, agent_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return the agent's records oldest-first, truncated to the newest ``limit``."""
        records = self._db.get(agent_id, [])
        if limit is not None:
            if limit <= 0:
                return []
            records = records[-limit:]
        return copy.deepcopy(records)

    def agents(self) -> List[str]:
        return list(self._db)
