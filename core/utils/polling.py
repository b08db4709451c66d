"""Cancellable sleeps for the bounded readiness polls."""

import asyncio
from typing import Optional

from core.models.errors import OperationCancelledError


async def sleep_or_cancel(
    seconds: float, cancel_event: Optional[asyncio.Event], subject: str
) -> None:
    """Sleep ``seconds`` unless ``cancel_event`` is set first.

    Raises OperationCancelledError as soon as the event is set, so a
    cancellation never looks like a timeout.
    """
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return

    if cancel_event.is_set():
        raise OperationCancelledError("Cancelled while waiting", subject=subject)

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return

    raise OperationCancelledError("Cancelled while waiting", subject=subject)


def check_cancelled(cancel_event: Optional[asyncio.Event], subject: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("Cancelled before start", subject=subject)
