"""
Shared types for read counting components.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

from .intervals import Interval


class OverlapPolicy(str, Enum):
    """Which reads a shard fetch returns at its edges."""

    STRICT = "STRICT"  # Only reads starting inside the shard
    OVERLAPS = "OVERLAPS"  # Any read overlapping the shard


@dataclass(frozen=True)
class Read:
    """
    A read as far as counting is concerned.

    ``identity_key`` decides whether two fetched records are the same read:
    the source's own id when it has one, otherwise sequence, alignment start,
    fragment (template) name and read number in the pair.
    """

    id: Optional[str]
    sequence_name: str
    alignment_start: int
    fragment_name: str = ""
    read_number: int = 0

    @property
    def identity_key(self) -> Union[str, Tuple[str, int, str, int]]:
        if self.id:
            return self.id
        return (
            self.sequence_name,
            self.alignment_start,
            self.fragment_name,
            self.read_number,
        )


@dataclass(frozen=True)
class ReadPage:
    """One page of results from a remote read source."""

    reads: List[Read] = field(default_factory=list)
    next_page_token: Optional[str] = None


@dataclass(frozen=True)
class FetchRequest:
    """A request for the reads of one shard."""

    shard: Interval


@dataclass(frozen=True)
class ApiFetchRequest(FetchRequest):
    """Shard request against the remote reads API."""

    read_group_set_id: str
    overlap_policy: OverlapPolicy = OverlapPolicy.OVERLAPS
    page_size: int = 0  # 0 lets the API pick


@dataclass(frozen=True)
class FileFetchRequest(FetchRequest):
    """Shard request against an indexed BAM file."""

    path: str

