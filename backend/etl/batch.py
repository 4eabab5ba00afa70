"""
Settle-all batch fetching.

The platform calls are blocking (requests), so each call runs in a worker
thread and the batch waits for every outcome. One failure never cancels the
rest: successes and failures come back separately, keyed by the caller's id.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Mapping

logger = logging.getLogger(__name__)

DC_MAX_CONCURRENCY = int(os.getenv("DC_MAX_CONCURRENCY", "8"))


@dataclass
class BatchOutcome:
    successes: Dict[Hashable, Any] = field(default_factory=dict)
    failures: Dict[Hashable, BaseException] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return len(self.failures)

    def error_messages(self, limit: int = 10) -> Dict[str, str]:
        out = {}
        for key, exc in list(self.failures.items())[:limit]:
            out[str(key)] = f"{type(exc).__name__}: {exc}"
        return out


async def settle_all(
    calls: Mapping[Hashable, Callable[[], Any]],
    limit: int = DC_MAX_CONCURRENCY,
    label: str = "batch",
) -> BatchOutcome:
    """
    Run every zero-arg callable in `calls` concurrently and collect all outcomes.
    """
    semaphore = asyncio.Semaphore(max(1, limit))
    keys = list(calls.keys())

    async def _one(key):
        async with semaphore:
            return await asyncio.to_thread(calls[key])

    results = await asyncio.gather(*(_one(k) for k in keys), return_exceptions=True)

    outcome = BatchOutcome()
    for key, result in zip(keys, results):
        if isinstance(result, Exception):
            outcome.failures[key] = result
        elif isinstance(result, BaseException):
            raise result
        else:
            outcome.successes[key] = result

    if outcome.failures:
        logger.warning(f"[{label}] {len(outcome.failures)}/{len(keys)} calls failed")
    return outcome
