"""Async test doubles: delivery channel and controllable sleeps."""

import asyncio
from pathlib import Path

from services.delivery_service import DeliveryResult


class FakeChannel:
    """Delivery channel that records sends and fails for chosen recipients."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent: list[tuple[str, str, Path]] = []
        self.ready = True

    def is_ready(self):
        return self.ready

    async def send_document(self, recipient, text, path):
        if recipient in self.failing:
            return DeliveryResult(False, "recipient rejected")
        self.sent.append((recipient, text, path))
        return DeliveryResult(True)


class RecordingSleep:
    """Returns at once, remembering how long it was asked to wait."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class ManualSleep:
    """Blocks until the test calls release_all()."""

    def __init__(self):
        self.calls: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    def release_all(self):
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()


async def settle(rounds: int = 20):
    """Let every runnable task, and the worker threads it awaits, advance as far as it can."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)
