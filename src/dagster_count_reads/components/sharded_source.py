"""
Sharded read source: fan shard fetches out over a worker pool and merge
their reads back into one stream.

Each shard's reads are filtered to those whose alignment start lies inside
the shard, so a read that overlaps a shard boundary is counted by the shard
it starts in and by no other.
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, List, Optional, Sequence

from .errors import FatalFetchError, FetchCancelledError
from .types import FetchRequest, Read

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
DEFAULT_BATCH_SIZE = 1000
DEFAULT_QUEUE_SIZE = 64
PUT_POLL_SECONDS = 0.1

FetchFn = Callable[[FetchRequest], Iterator[Read]]


def format_progress(
    shard_num: int, total_shards: int, reads_counted: int, rate: float = None
) -> str:
    """Format progress message for consistent logging."""
    base = f"Shard {shard_num}:{total_shards} | Reads: {reads_counted:8d}"
    if rate is not None:
        base += f" | Rate: {rate:6.0f} reads/sec"
    return base


def read_shard(request: FetchRequest, fetch: FetchFn) -> Iterator[Read]:
    """Fetch one shard and keep only the reads it owns."""
    shard = request.shard
    for read in fetch(request):
        if shard.contains_start(read.alignment_start):
            yield read


def as_shard_failure(error: BaseException, request: FetchRequest) -> BaseException:
    """Make sure a shard failure names the shard it happened in."""
    if isinstance(error, FetchCancelledError):
        return error
    if isinstance(error, FatalFetchError) and error.interval is not None:
        return error
    failure = FatalFetchError(f"{type(error).__name__}: {error}", request.shard)
    failure.__cause__ = error
    return failure


class ShardedReadSource:
    """
    Runs one fetch per shard request on a thread pool and yields the union
    of their reads.

    Workers push batches of reads into a bounded queue that ``reads()``
    drains until every shard has reported completion. Reads from different
    shards arrive interleaved; each shard's own order is kept. If any shard
    fails, the remaining shards are cancelled and the failure is raised from
    ``reads()``.
    """

    def __init__(
        self,
        requests: Sequence[FetchRequest],
        fetch: FetchFn,
        max_workers: int = DEFAULT_MAX_WORKERS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.requests: List[FetchRequest] = list(requests)
        self.fetch = fetch
        self.max_workers = max(1, max_workers)
        self.batch_size = max(1, batch_size)
        self.queue_size = queue_size
        self.cancel_event = cancel_event or threading.Event()

    def _put(self, merge_queue: queue.Queue, item) -> None:
        while True:
            try:
                merge_queue.put(item, timeout=PUT_POLL_SECONDS)
                return
            except queue.Full:
                if self.cancel_event.is_set():
                    raise FetchCancelledError("Merge abandoned")

    def _run_shard(self, merge_queue: queue.Queue, index: int, request: FetchRequest):
        if self.cancel_event.is_set():
            return

        read_count = 0
        batch: List[Read] = []
        try:
            for read in read_shard(request, self.fetch):
                if self.cancel_event.is_set():
                    raise FetchCancelledError(f"Cancelled while fetching {request.shard}")
                batch.append(read)
                read_count += 1
                if len(batch) >= self.batch_size:
                    self._put(merge_queue, ("reads", index, batch))
                    batch = []

            if batch:
                self._put(merge_queue, ("reads", index, batch))
            self._put(merge_queue, ("done", index, read_count))
        except Exception as e:
            if self.cancel_event.is_set():
                return
            self._put(merge_queue, ("error", index, e))

    def reads(self) -> Iterator[Read]:
        """
        Start a run over every shard and yield the merged reads.

        Each call is a fresh run: a cancellation left over from an abandoned
        or failed earlier run is cleared first.
        """
        self.cancel_event.clear()
        total_shards = len(self.requests)
        if total_shards == 0:
            return

        merge_queue: queue.Queue = queue.Queue(maxsize=self.queue_size)
        workers = min(self.max_workers, total_shards)
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="shard-fetch")
        logger.info(f"Fetching {total_shards} shards with {workers} workers")

        start_time = time.time()
        pending = total_shards
        reads_merged = 0
        try:
            for index, request in enumerate(self.requests):
                executor.submit(self._run_shard, merge_queue, index, request)

            while pending:
                try:
                    kind, index, payload = merge_queue.get(timeout=PUT_POLL_SECONDS)
                except queue.Empty:
                    if self.cancel_event.is_set():
                        raise FetchCancelledError("Run cancelled before all shards completed")
                    continue

                if kind == "reads":
                    reads_merged += len(payload)
                    yield from payload
                elif kind == "done":
                    pending -= 1
                    elapsed_time = time.time() - start_time
                    rate = reads_merged / elapsed_time if elapsed_time > 0 else 0
                    logger.info(
                        format_progress(
                            total_shards - pending, total_shards, reads_merged, rate
                        )
                        + f" | {self.requests[index].shard}: {payload} reads"
                    )
                else:
                    request = self.requests[index]
                    logger.error(f"Shard {request.shard} failed: {payload}")
                    raise as_shard_failure(payload, request)
        finally:
            if pending:
                self.cancel_event.set()
            executor.shutdown(wait=True, cancel_futures=True)

    def __iter__(self) -> Iterator[Read]:
        return self.reads()
