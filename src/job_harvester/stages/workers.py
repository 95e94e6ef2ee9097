"""
Bounded worker pool for per-URL stage work.

Each worker takes items from a shared queue and processes them one at a
time until the queue is drained. Items may enqueue follow-up items (listing
expansion in Stage 3). Workers release their thread-bound renderer
resources before exiting.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Generic, Iterable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkQueue(Generic[T]):
    """Queue that knows when every item, including follow-ups, is finished."""

    def __init__(self, items: Iterable[T] = ()):
        self._queue: "queue.Queue[T]" = queue.Queue()
        for item in items:
            self._queue.put(item)

    def put(self, item: T) -> None:
        self._queue.put(item)

    def get(self, timeout: float) -> T:
        return self._queue.get(timeout=timeout)

    def task_done(self) -> None:
        self._queue.task_done()

    @property
    def finished(self) -> bool:
        return self._queue.unfinished_tasks == 0


def run_workers(
    work: WorkQueue[T],
    handler: Callable[[T], None],
    concurrency: int,
    on_thread_exit: Optional[Callable[[], None]] = None,
    poll_interval: float = 0.2,
) -> None:
    """
    Process queued items with ``concurrency`` worker threads.

    ``handler`` owns its error handling; an exception escaping it is logged
    and the worker moves on to the next item.

    Args:
        work: Items to process; handlers may add more while running
        handler: Processes one item end-to-end
        concurrency: Number of worker threads
        on_thread_exit: Called in each worker thread before it exits
        poll_interval: Seconds an idle worker waits before re-checking
    """
    stop = threading.Event()

    def worker() -> None:
        try:
            while not stop.is_set():
                try:
                    item = work.get(timeout=poll_interval)
                except queue.Empty:
                    if work.finished:
                        return
                    continue
                try:
                    handler(item)
                except Exception as e:
                    logger.error(f"Unhandled error in worker: {e}", exc_info=True)
                finally:
                    work.task_done()
        finally:
            if on_thread_exit is not None:
                on_thread_exit()

    workers = max(1, concurrency)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="harvester") as executor:
        futures = [executor.submit(worker) for _ in range(workers)]
        try:
            for future in futures:
                future.result()
        except BaseException:
            stop.set()
            raise
