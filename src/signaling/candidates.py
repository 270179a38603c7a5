from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from signaling.errors import CacheAlreadyFlushedError, CandidateApplyError
from signaling.messages import Candidate

LOGGER = logging.getLogger(__name__)

ApplyFn = Callable[[Candidate], Awaitable[None]]


class CandidateCache:
    """Remote ICE candidates received before the remote description was set.

    The inbound pump appends and the negotiator flushes, so both go through a
    single lock. Once flushed the cache refuses new entries; the pump then
    forwards late candidates to the negotiator instead.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._pending: deque[Candidate] = deque()
        self._flushed = False

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def flushed(self) -> bool:
        return self._flushed

    async def add(self, candidate: Candidate) -> bool:
        """Cache a candidate; returns False if the cache was already flushed."""

        async with self._lock:
            if self._flushed:
                return False
            self._pending.append(candidate)
            LOGGER.info(
                "Caching remote ICE candidate: %s SdpMid: %s SdpMLineIndex: %s",
                candidate.candidate,
                candidate.sdp_mid,
                candidate.sdp_mline_index,
            )
            return True

    async def flush(self, apply: ApplyFn) -> int:
        """Apply every cached candidate once, oldest first.

        Raises:
            CacheAlreadyFlushedError: on a second flush.
            CandidateApplyError: on the first candidate the engine refuses.
        """

        async with self._lock:
            if self._flushed:
                raise CacheAlreadyFlushedError()
            self._flushed = True

            applied = 0
            while self._pending:
                candidate = self._pending.popleft()
                LOGGER.info(
                    "Adding cached remote ICE candidate: %s SdpMid: %s SdpMLineIndex: %s",
                    candidate.candidate,
                    candidate.sdp_mid,
                    candidate.sdp_mline_index,
                )
                try:
                    await apply(candidate)
                except Exception as exc:
                    raise CandidateApplyError(f"{candidate.candidate}: {exc}") from exc
                applied += 1
            return applied
