"""Durable job state: one JSON document per job in the reports directory."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r"^job_[A-Za-z0-9_]+$")


def is_valid_job_id(job_id: str) -> bool:
    """``True`` for ids of the form generated by the orchestrator."""
    return bool(_JOB_ID_RE.fullmatch(job_id or ""))


class JobStore:
    """Reads and writes ``<reports_dir>/<job_id>.json``.

    File I/O runs in a worker thread.  Writes go to a temporary file that
    then replaces the report, so a crash never leaves a truncated report.
    Save failures are logged and swallowed: persistence must never stop a
    job's processing loop.
    """

    def __init__(self, reports_dir: Path) -> None:
        self._dir = Path(reports_dir)

    def path_for(self, job_id: str) -> Path:
        if not is_valid_job_id(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return self._dir / f"{job_id}.json"

    async def save(self, state: dict[str, Any]) -> bool:
        """Persist ``state`` (which must carry an ``id``).  Returns success."""
        try:
            await asyncio.to_thread(self._write, state)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("crawl: could not save state of job %s: %s", state.get("id"), exc)
            return False
        return True

    def _write(self, state: dict[str, Any]) -> None:
        path = self.path_for(state["id"])
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(state, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, path)

    async def load(self, job_id: str) -> Optional[dict[str, Any]]:
        """Return the persisted state, or ``None`` if absent or unreadable."""
        try:
            path = self.path_for(job_id)
        except ValueError:
            return None
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("crawl: could not read state of job %s: %s", job_id, exc)
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            logger.error("crawl: corrupt state file for job %s: %s", job_id, exc)
            return None

    async def delete(self, job_id: str) -> bool:
        """Remove the persisted state.  Returns ``True`` if a file was removed."""
        try:
            path = self.path_for(job_id)
        except ValueError:
            return False
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("crawl: could not delete state of job %s: %s", job_id, exc)
            return False
        return True

    async def list_states(self) -> list[dict[str, Any]]:
        """Load every readable job state in the reports directory."""
        if not self._dir.is_dir():
            return []
        job_ids = sorted(
            path.stem for path in self._dir.glob("job_*.json") if is_valid_job_id(path.stem)
        )
        states: list[dict[str, Any]] = []
        for job_id in job_ids:
            state = await self.load(job_id)
            if state is not None:
                states.append(state)
        return states
