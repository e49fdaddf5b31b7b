"""
Esecuzione fire-and-forget delle pipeline.

Il router crea il record e passa la coroutine della pipeline al task runner,
senza attendere il risultato. In produzione ``BackgroundTaskRunner`` crea un
asyncio task; nei test ``InlineTaskRunner`` esegue la coroutine sul posto.
"""
import asyncio
import logging
from typing import Coroutine, Optional, Protocol, Set

logger = logging.getLogger(__name__)


class TaskRunner(Protocol):
    async def submit(self, coro: Coroutine, name: Optional[str] = None) -> None: ...


class BackgroundTaskRunner:
    """Avvia ogni pipeline come asyncio task indipendente (nessuna coda, nessun limite)."""

    def __init__(self):
        # Riferimenti forti: il loop tiene solo weakref dei task
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def submit(self, coro: Coroutine, name: Optional[str] = None) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug(f"[TASKS] Started background task {task.get_name()}")

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"[TASKS] Background task {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"[TASKS] Background task {task.get_name()} crashed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__)
            )

    async def wait_idle(self) -> None:
        """Attende i task in corso (usato allo shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class InlineTaskRunner:
    """Esegue la pipeline nel chiamante: i test vedono lo stato finale al ritorno."""

    def __init__(self):
        self.submitted: list = []

    async def submit(self, coro: Coroutine, name: Optional[str] = None) -> None:
        self.submitted.append(name)
        await coro
