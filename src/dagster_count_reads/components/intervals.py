"""
Genomic intervals and shard splitting.

An interval is a half-open ``[start, end)`` range on a named reference
sequence. ``end == TO_END`` means "up to the end of the sequence"; the
sequence length is then taken from reference metadata when available.
"""

from dataclasses import dataclass
from typing import List, Optional

from .errors import InvalidRangeError

TO_END = -1
DEFAULT_SHARD_LENGTH = 1_000_000


@dataclass(frozen=True)
class Interval:
    """A half-open range on one reference sequence."""

    sequence_name: str
    start: int = 0
    end: int = TO_END

    @property
    def is_open_ended(self) -> bool:
        return self.end == TO_END

    @property
    def length(self) -> Optional[int]:
        """Number of bases covered, or None when the end is not known."""
        if self.is_open_ended:
            return None
        return self.end - self.start

    def contains_start(self, position: int) -> bool:
        """True if a read starting at ``position`` belongs to this interval."""
        if position < self.start:
            return False
        return self.is_open_ended or position < self.end

    def __str__(self) -> str:
        end = "END" if self.is_open_ended else str(self.end)
        return f"{self.sequence_name}:[{self.start},{end})"


def _check_range(interval: Interval) -> None:
    if interval.start < 0:
        raise InvalidRangeError(f"Negative start in {interval}")
    if not interval.is_open_ended and interval.start > interval.end:
        raise InvalidRangeError(
            f"Start {interval.start} is past end {interval.end} on {interval.sequence_name}"
        )


def calculate_total_shards(length: int, shard_length: int) -> int:
    """Calculate number of shards needed to cover ``length`` bases."""
    return (length + shard_length - 1) // shard_length  # Ceiling division


def resolve_end(interval: Interval, sequence_length: Optional[int]) -> Interval:
    """Replace a TO_END sentinel with the sequence length, if one is known."""
    if not interval.is_open_ended or sequence_length is None:
        return interval
    return Interval(interval.sequence_name, interval.start, sequence_length)


def split_interval(
    interval: Interval,
    shard_length: int = DEFAULT_SHARD_LENGTH,
    sequence_length: Optional[int] = None,
) -> List[Interval]:
    """
    Split an interval into consecutive shards of at most ``shard_length`` bases.

    The shards tile the interval with no gaps and no overlaps. An open-ended
    interval whose sequence length is unknown becomes one unbounded shard,
    left for the read source to limit.
    """
    if shard_length <= 0:
        raise InvalidRangeError(f"Shard length must be positive, got {shard_length}")

    interval = resolve_end(interval, sequence_length)
    _check_range(interval)

    if interval.is_open_ended:
        return [interval]

    if interval.length <= shard_length:
        return [interval]

    total_shards = calculate_total_shards(interval.length, shard_length)
    shards = []
    for shard_num in range(total_shards):
        shard_start = interval.start + shard_num * shard_length
        shard_end = min(shard_start + shard_length, interval.end)
        shards.append(Interval(interval.sequence_name, shard_start, shard_end))
    return shards


def parse_regions(text: str) -> List[Interval]:
    """
    Parse ``name[:start[:end]]`` entries separated by commas.

    ``chr1`` is the whole of chr1, ``chr1:1000`` runs from 1000 to the end,
    ``chr1:1000:2000`` is ``[1000, 2000)``. Blank entries are ignored.
    """
    intervals = []
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue

        parts = entry.split(":")
        if len(parts) > 3 or not parts[0]:
            raise InvalidRangeError(f"Malformed region: {entry!r}")

        try:
            start = int(parts[1]) if len(parts) > 1 else 0
            end = int(parts[2]) if len(parts) > 2 else TO_END
        except ValueError:
            raise InvalidRangeError(f"Non-numeric coordinate in region: {entry!r}")

        interval = Interval(parts[0], start, end)
        _check_range(interval)
        intervals.append(interval)
    return intervals
