"""
Background event loop.

Runs one asyncio event loop in a daemon thread so synchronous Flask handlers
can start coroutines that outlive the request (the bot join monitors).
"""

import asyncio
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """Owns an asyncio event loop running in a background thread."""

    def __init__(self, name: str = "bot-loop"):
        self.name = name
        self.loop: asyncio.AbstractEventLoop | None = None
        self.thread: threading.Thread | None = None
        self._ready = threading.Event()

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def start(self) -> None:
        """Start the loop thread. Safe to call more than once."""
        if self.running:
            return

        self._ready.clear()
        self.thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self.thread.start()
        self._ready.wait()
        logger.info("Background event loop started (%s)", self.name)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop and wait for the thread to exit."""
        if not self.running or self.loop is None:
            return

        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=timeout)
        logger.info("Background event loop stopped (%s)", self.name)

    def submit(self, coro: Coroutine) -> Future:
        """Schedule a coroutine on the loop and return its future."""
        if not self.running:
            self.start()
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine, timeout: float | None = None) -> Any:
        """Run a coroutine on the loop and block until it finishes."""
        return self.submit(coro).result(timeout=timeout)

    def _run_loop(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        try:
            self.loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self.loop)
            for task in pending:
                task.cancel()
            if pending:
                self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self.loop.close()
