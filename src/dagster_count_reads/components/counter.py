"""
Global read count.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)


def count_reads(reads: Iterable) -> int:
    """Consume ``reads`` and return how many there were."""
    total = 0
    for _ in reads:
        total += 1
    return total


class ReadCounter:
    """Streaming reducer for counts that arrive in pieces, e.g. one per shard."""

    def __init__(self):
        self.total = 0
        self.parts = 0

    def add(self, count: int) -> None:
        self.total += count
        self.parts += 1


def write_count(count: int, output_path: Optional[Union[str, Path]] = None) -> None:
    """Write the count as a single decimal line, to stdout when no path is given."""
    line = f"{count}\n"
    if output_path is None or str(output_path) == "-":
        sys.stdout.write(line)
        return

    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, "w") as f:
        f.write(line)
    logger.info(f"Wrote read count {count:,} to {output_file}")
