"""Cancellable countdown helpers."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


async def cancellable_sleep(
    seconds: float,
    cancel_event: Optional[asyncio.Event] = None,
    on_tick: Optional[Callable[[int], None]] = None,
    tick: float = 1.0,
) -> bool:
    """Sleep in ``tick``-second slices, reporting the remaining seconds.

    Returns False when ``cancel_event`` was set before the delay ran out.
    """
    remaining = float(seconds)
    while remaining > 0:
        if cancel_event is not None and cancel_event.is_set():
            return False
        if on_tick is not None:
            on_tick(int(remaining + 0.999))
        step = min(tick, remaining)
        if cancel_event is None:
            await asyncio.sleep(step)
        else:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=step)
                return False
            except asyncio.TimeoutError:
                pass
        remaining -= step
    return not (cancel_event is not None and cancel_event.is_set())
