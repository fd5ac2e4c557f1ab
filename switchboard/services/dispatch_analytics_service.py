"""Anonymised dispatch outcome stream.

Every finished dispatch (text or interaction) becomes one small JSON event.
Events are buffered in memory and shipped either to an HTTP collector or to a
local JSON-lines file. User ids never leave the process; only a salted hash.
"""

from __future__ import annotations

import asyncio
import collections
import hashlib
import json
import logging
import os
import time
from typing import Any, Counter, Dict, List, Optional

import aiofiles
import aiohttp

from switchboard.configs.schema import AnalyticsConfig
from switchboard.services.context import ExecutionContext, ExecutionOutcome

Event = Dict[str, Any]


class DispatchAnalyticsService:
    """Collect dispatch outcomes and periodically hand them to a sink."""

    def __init__(self, config: AnalyticsConfig) -> None:
        self.config = config
        self.enabled = config.enabled
        self.logger = logging.getLogger("Switchboard.Analytics")
        self.outcomes: Counter[str] = collections.Counter()
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._task: Optional[asyncio.Task[None]] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._flush_lock = asyncio.Lock()

    @property
    def sink(self) -> str:
        return "http" if self.config.endpoint else "file"

    async def start(self) -> None:
        if not self.enabled or self._task is not None:
            return
        self._task = asyncio.create_task(self._flush_periodically())
        self.logger.info(
            "Dispatch analytics streaming to %s every %ss (batch=%s).",
            self.sink,
            self.config.flush_interval_seconds,
            self.config.batch_size,
        )

    async def close(self) -> None:
        """Stop the flush loop, ship whatever is still queued and drop the HTTP session."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._flush(drain=True)
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------ recording
    async def record_dispatch(self, ctx: ExecutionContext, outcome: ExecutionOutcome, started: float) -> None:
        """Queue one finished dispatch; ``started`` is a ``time.monotonic()`` reading."""
        if not self.enabled:
            return
        self.outcomes[outcome.value] += 1
        meta: Dict[str, Any] = {"state": ctx.state.value}
        if ctx.session is not None:
            meta["session"] = ctx.session.state.value
        if ctx.error is not None:
            meta["error"] = type(ctx.error).__name__
        event = self.event_payload(
            command=ctx.command.qualified_name if ctx.command is not None else None,
            outcome=outcome.value,
            source="interaction" if ctx.is_interaction else "message",
            duration_ms=(time.monotonic() - started) * 1000.0,
            guild_id=ctx.guild_id,
            user_id=ctx.author_id,
            metadata=meta,
        )
        await self._queue.put(event)
        if self._queue.qsize() >= self.config.batch_size:
            await self._flush()

    def event_payload(
        self,
        *,
        command: Optional[str],
        outcome: str,
        source: str,
        duration_ms: float,
        guild_id: Optional[int],
        user_id: Optional[int],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Event:
        event: Event = {
            "ts": int(time.time()),
            "source": source,
            "command": command,
            "outcome": outcome,
            "duration_ms": round(duration_ms, 2),
            "guild_id": guild_id,
        }
        if user_id is not None:
            event["user_hash"] = self.anonymise_user(user_id)
        if metadata:
            event["meta"] = metadata
        return event

    def anonymise_user(self, user_id: int) -> str:
        material = f"{self.config.hash_salt or 'switchboard'}:{user_id}".encode("utf-8")
        return hashlib.sha256(material).hexdigest()[:32]

    # ------------------------------------------------------------------ shipping
    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.config.flush_interval_seconds)
            await self._flush()

    def _take_batch(self) -> List[Event]:
        batch: List[Event] = []
        while len(batch) < self.config.batch_size and not self._queue.empty():
            batch.append(self._queue.get_nowait())
        return batch

    async def _flush(self, drain: bool = False) -> None:
        async with self._flush_lock:
            batch = self._take_batch()
            while batch:
                if self.config.endpoint:
                    await self._send_http(batch)
                else:
                    await self._write_file(batch)
                batch = self._take_batch() if drain else []

    async def _send_http(self, batch: List[Event]) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        try:
            async with self._session.post(self.config.endpoint, json=batch, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    self.logger.error("Collector rejected %s events (%s): %s", len(batch), resp.status, body[:200])
                    return
            self.logger.debug("Shipped %s dispatch events.", len(batch))
        except aiohttp.ClientError as exc:
            self.logger.error("Could not reach analytics collector: %s", exc)

    async def _write_file(self, batch: List[Event]) -> None:
        path = self.config.storage_path
        folder = os.path.dirname(path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        lines = "".join(json.dumps(event, separators=(",", ":")) + "\n" for event in batch)
        try:
            async with aiofiles.open(path, "a", encoding="utf-8") as handle:
                await handle.write(lines)
        except OSError as exc:  # pragma: no cover - filesystem failure
            self.logger.error("Could not append dispatch events to %s: %s", path, exc)
