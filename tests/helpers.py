"""Action and compensation factories shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Any, Callable


def returning(value: Any, delay: float = 0.0) -> Callable:
    """Return an action whose awaitable resolves to *value*."""
    async def action(*_args: Any) -> Any:
        if delay:
            await asyncio.sleep(delay)
        return value

    return action


def failing(message: str) -> Callable:
    """Return an action whose awaitable raises RuntimeError(message)."""
    async def action(*_args: Any) -> Any:
        raise RuntimeError(message)

    return action


def cancelled(*_args: Any) -> asyncio.Future:
    """Action/compensation returning a future that is already cancelled."""
    future = asyncio.get_running_loop().create_future()
    future.cancel()
    return future


def make_recording_compensation(
    calls: list[str], label: str, delay: float = 0.0
) -> Callable:
    """Return an async compensation that appends *label* to *calls*."""
    async def compensation(context: dict) -> None:
        if delay:
            await asyncio.sleep(delay)
        calls.append(label)

    return compensation
