"""
In-process read counting: plan shards, fetch them on a worker pool, count.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .components.counter import count_reads, write_count
from .components.errors import ConfigurationError
from .components.genomics_api import GenomicsApiClient
from .components.intervals import Interval
from .components.metadata import ApiSequenceMetadata, SequenceMetadataProvider
from .components.paginator import PaginatedFetcher, RemoteReadSource
from .components.shard_requests import build_fetch_requests, group_regions
from .components.sharded_source import ShardedReadSource
from .components.stream_bam import (
    BamHeaderMetadata,
    BamReadSource,
    BamStats,
    scan_bam_sequentially,
)
from .components.types import ApiFetchRequest, FetchRequest, FileFetchRequest
from .config import PipelineConfig

logger = logging.getLogger(__name__)


def make_api_client(config: PipelineConfig) -> GenomicsApiClient:
    return GenomicsApiClient(
        base_url=config.api_base_url,
        api_key=config.api_key,
        timeout=config.request_timeout,
    )


@contextmanager
def open_remote_source(
    config: PipelineConfig, remote_source=None
) -> Iterator[Optional[RemoteReadSource]]:
    """
    Yield the remote read source for an API run.

    A given ``remote_source`` is passed through and left open. Otherwise an
    API client is created and closed on exit. BAM runs get None.
    """
    if remote_source is not None or config.uses_bam:
        yield remote_source
        return

    with make_api_client(config) as client:
        yield client


def make_metadata(
    config: PipelineConfig, remote_source=None
) -> SequenceMetadataProvider:
    """Reference lengths from the BAM header, or from the API's reference set."""
    if config.uses_bam:
        return BamHeaderMetadata(config.bam_path)
    if remote_source is None:
        raise ConfigurationError("No remote read source open for reference lookups")
    return ApiSequenceMetadata(
        remote_source,
        config.read_group_set_id,
        max_retries=config.max_retries,
    )


class ShardFetcher:
    """Routes each shard request to the reader for its kind of source."""

    def __init__(
        self,
        paginated_fetcher: Optional[PaginatedFetcher] = None,
        bam_source: Optional[BamReadSource] = None,
    ):
        self.paginated_fetcher = paginated_fetcher
        self.bam_source = bam_source or BamReadSource()

    def __call__(self, request: FetchRequest):
        if isinstance(request, ApiFetchRequest):
            if self.paginated_fetcher is None:
                raise TypeError("No remote read source configured for API requests")
            return self.paginated_fetcher.fetch(request)
        if isinstance(request, FileFetchRequest):
            return self.bam_source.fetch(request)
        raise TypeError(f"Unsupported request type: {type(request).__name__}")


def make_shard_fetcher(
    config: PipelineConfig,
    remote_source: Optional[RemoteReadSource] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ShardFetcher:
    paginated_fetcher = None
    if not config.uses_bam:
        if remote_source is None:
            raise ConfigurationError("No remote read source open for API requests")
        paginated_fetcher = PaginatedFetcher(
            remote_source,
            max_retries=config.max_retries,
            cancel_event=cancel_event,
        )
    return ShardFetcher(paginated_fetcher=paginated_fetcher)


def plan_requests(
    config: PipelineConfig, metadata: SequenceMetadataProvider
) -> List[FetchRequest]:
    return build_fetch_requests(
        group_regions(config.regions()),
        config.source(),
        metadata,
        shard_length=config.shard_length,
    )


def sequential_intervals(
    config: PipelineConfig, metadata: SequenceMetadataProvider
) -> List[Interval]:
    regions = config.regions()
    if regions:
        return regions
    return [Interval(name, 0, length) for name, length in metadata.sequences()]


def count_reads_for_config(
    config: PipelineConfig,
    remote_source: Optional[RemoteReadSource] = None,
    metadata: Optional[SequenceMetadataProvider] = None,
    cancel_event: Optional[threading.Event] = None,
) -> int:
    """
    Count the reads selected by ``config`` without writing anything.

    Metadata lookups and shard fetches share one remote source, which is
    closed when the count is done unless the caller passed it in.
    """
    if config.uses_bam and not config.shard_bam_reading:
        # For testing and comparing sharded vs. not sharded only
        metadata = metadata or make_metadata(config)
        return count_reads(
            scan_bam_sequentially(config.bam_path, sequential_intervals(config, metadata))
        )

    if config.uses_bam:
        # Needs the BAM index
        stats = BamStats.from_url(config.bam_path)
        logger.info(
            f"BAM file {config.bam_path}: {stats.total_reads:,} reads "
            f"over {stats.num_references} references"
        )

    cancel_event = cancel_event or threading.Event()
    with open_remote_source(config, remote_source) as source_client:
        metadata = metadata or make_metadata(config, source_client)
        requests = plan_requests(config, metadata)
        source = ShardedReadSource(
            requests,
            make_shard_fetcher(config, source_client, cancel_event),
            max_workers=config.max_workers,
            cancel_event=cancel_event,
        )
        return count_reads(source.reads())


def run_count_reads(
    config: PipelineConfig,
    remote_source: Optional[RemoteReadSource] = None,
    metadata: Optional[SequenceMetadataProvider] = None,
) -> int:
    """Validate, count and write the count. Nothing is written if any shard fails."""
    config.validate()
    start_time = time.time()

    total = count_reads_for_config(config, remote_source=remote_source, metadata=metadata)
    write_count(total, config.output_path)

    logger.info("=" * 70)
    logger.info("Counting complete!")
    logger.info(f"Total reads: {total:,}")
    logger.info(f"Total time: {time.time() - start_time:.2f} seconds")
    return total
