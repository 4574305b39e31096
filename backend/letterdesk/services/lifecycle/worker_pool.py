"""
Generation Worker Pool

Background dispatcher for letter generation. Each job runs on a pool thread
with its own database session, so the request that scheduled it never waits.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Set

from .engine import LetterLifecycleEngine

logger = logging.getLogger(__name__)


class GenerationWorkerPool:
    """ThreadPoolExecutor-backed ``submit(letter_id)`` dispatcher."""

    def __init__(self, database, content_generator, max_workers: int = 4):
        self.database = database
        self.content_generator = content_generator
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="letter-gen")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, letter_id: str) -> Future:
        future = self._executor.submit(self.run, letter_id)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def run(self, letter_id: str) -> bool:
        db = self.database.session()
        try:
            engine = LetterLifecycleEngine(db, content_generator=self.content_generator)
            return engine.generate_content(letter_id)
        finally:
            db.close()

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        exc = future.exception()
        if exc is not None:
            logger.error(f"Generation job crashed: {exc!r}")

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted job has finished."""
        with self._lock:
            futures = list(self._pending)
        if futures:
            wait(futures, timeout=timeout)

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_jobs)
