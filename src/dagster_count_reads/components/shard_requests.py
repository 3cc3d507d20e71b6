"""
Turn regions of interest into one fetch request per shard.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Union

from .intervals import DEFAULT_SHARD_LENGTH, Interval, split_interval
from .metadata import SequenceMetadataProvider
from .types import ApiFetchRequest, FetchRequest, FileFetchRequest, OverlapPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiSource:
    """Reads come from a read group set in the remote API."""

    read_group_set_id: str
    page_size: int = 0


@dataclass(frozen=True)
class FileSource:
    """Reads come from an indexed BAM file."""

    path: str


ReadSourceSpec = Union[ApiSource, FileSource]


def group_regions(intervals: Iterable[Interval]) -> Dict[str, List[Interval]]:
    """Group intervals by sequence, keeping first-seen sequence order."""
    grouped: Dict[str, List[Interval]] = {}
    for interval in intervals:
        grouped.setdefault(interval.sequence_name, []).append(interval)
    return grouped


def _make_request(shard: Interval, source: ReadSourceSpec) -> FetchRequest:
    if isinstance(source, ApiSource):
        # Reads crossing the left edge are fetched too and dropped at merge time.
        return ApiFetchRequest(
            shard=shard,
            read_group_set_id=source.read_group_set_id,
            overlap_policy=OverlapPolicy.OVERLAPS,
            page_size=source.page_size,
        )
    return FileFetchRequest(shard=shard, path=source.path)


def build_fetch_requests(
    regions: Mapping[str, List[Interval]],
    source: ReadSourceSpec,
    metadata: SequenceMetadataProvider,
    shard_length: int = DEFAULT_SHARD_LENGTH,
) -> List[FetchRequest]:
    """
    Build the ordered list of shard fetch requests.

    An empty ``regions`` mapping means the whole genome as listed by
    ``metadata``; an empty interval list for a sequence means that whole
    sequence. Requests are ordered by sequence, then by shard start.
    """
    if not regions:
        regions = {name: [] for name, _ in metadata.sequences()}

    requests: List[FetchRequest] = []
    for sequence_name, intervals in regions.items():
        if not intervals:
            intervals = [Interval(sequence_name)]

        sequence_length = None
        if any(interval.is_open_ended for interval in intervals):
            sequence_length = metadata.resolve(sequence_name)
            if sequence_length is None:
                logger.warning(
                    f"No length known for {sequence_name}, using an unbounded final shard"
                )

        for interval in sorted(intervals, key=lambda i: i.start):
            for shard in split_interval(interval, shard_length, sequence_length):
                requests.append(_make_request(shard, source))

    logger.info(f"Planned {len(requests)} shard requests over {len(regions)} sequences")
    return requests
