"""
Paginated, retrying fetch of one shard from a remote read source.
"""

import logging
import threading
import time
from typing import Callable, Iterator, Optional, Protocol, TypeVar

from .errors import FatalFetchError, FetchCancelledError, RetriableFetchError
from .intervals import Interval
from .types import ApiFetchRequest, OverlapPolicy, Read, ReadPage

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 10
INITIAL_BACKOFF_SECONDS = 0.5
MAX_BACKOFF_SECONDS = 32.0

T = TypeVar("T")


class RemoteReadSource(Protocol):
    def search_reads(
        self, request: ApiFetchRequest, page_token: Optional[str] = None
    ) -> ReadPage: ...


def backoff_delay(
    attempt: int,
    initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    max_backoff: float = MAX_BACKOFF_SECONDS,
) -> float:
    """Delay before retry number ``attempt + 1`` (doubling, capped)."""
    return min(initial_backoff * (2**attempt), max_backoff)


def call_with_retries(
    call: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    interval: Optional[Interval] = None,
    initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    max_backoff: float = MAX_BACKOFF_SECONDS,
    sleep: Optional[Callable[[float], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> T:
    """
    Run ``call``, retrying RetriableFetchError up to ``max_retries`` times.

    Fatal errors are raised straight away. When ``cancel_event`` is set the
    call is abandoned before the next attempt and during backoff, without
    any further retry. An injected ``sleep`` always does the backoff wait;
    the cancel event is then checked before the next attempt.
    """
    attempt = 0
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelledError(f"Cancelled before fetching {interval}")

        try:
            return call()
        except RetriableFetchError as e:
            if attempt >= max_retries:
                raise FatalFetchError(
                    f"Giving up after {attempt + 1} attempts: {e}", interval
                ) from e

            delay = backoff_delay(attempt, initial_backoff, max_backoff)
            logger.warning(
                f"[RETRY {attempt + 1}/{max_retries}] {interval}: {e}, waiting {delay:.1f}s"
            )
            if sleep is not None:
                sleep(delay)
            elif cancel_event is not None:
                if cancel_event.wait(delay):
                    raise FetchCancelledError(f"Cancelled while retrying {interval}")
            else:
                time.sleep(delay)
            attempt += 1
        except FatalFetchError as e:
            if e.interval is None and interval is not None:
                raise FatalFetchError(str(e), interval) from e
            raise


class PaginatedFetcher:
    """
    Fetches every page of one shard request and yields its reads.

    The generator returned by ``fetch`` is single use: to read a shard again,
    call ``fetch`` again.
    """

    def __init__(
        self,
        source: RemoteReadSource,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        sleep: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.source = source
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.sleep = sleep
        self.cancel_event = cancel_event

    def _fetch_page(self, request: ApiFetchRequest, page_token: Optional[str]) -> ReadPage:
        return call_with_retries(
            lambda: self.source.search_reads(request, page_token),
            max_retries=self.max_retries,
            interval=request.shard,
            initial_backoff=self.initial_backoff,
            max_backoff=self.max_backoff,
            sleep=self.sleep,
            cancel_event=self.cancel_event,
        )

    def fetch(self, request: ApiFetchRequest) -> Iterator[Read]:
        shard = request.shard
        page_token = None
        pages = 0

        while True:
            page = self._fetch_page(request, page_token)
            pages += 1

            for read in page.reads:
                if (
                    request.overlap_policy == OverlapPolicy.STRICT
                    and not shard.contains_start(read.alignment_start)
                ):
                    continue
                yield read

            page_token = page.next_page_token
            if not page_token:
                break

        logger.debug(f"Fetched {pages} pages for {shard}")
