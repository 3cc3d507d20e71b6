"""
Shared fixtures: a synthetic paginated reads API and indexed test BAM files.
"""

from typing import List, Optional, Tuple

import pysam
import pytest

from dagster_count_reads.components.types import ApiFetchRequest, Read, ReadPage

SHARD = 1_000_000


class SyntheticReadsApi:
    """
    In-memory stand-in for the reads API.

    Holds reads as ``(Read, end)`` and answers a search with every read
    overlapping the requested range, ``page_size`` reads per page.
    """

    def __init__(self, reads: List[Tuple[Read, int]], page_size: int = 4):
        self.reads = sorted(reads, key=lambda r: r[0].alignment_start)
        self.page_size = page_size
        self.calls: List[Tuple[ApiFetchRequest, Optional[str]]] = []

    def search_reads(self, request: ApiFetchRequest, page_token: Optional[str] = None) -> ReadPage:
        self.calls.append((request, page_token))
        shard = request.shard
        matches = [
            read
            for read, end in self.reads
            if read.sequence_name == shard.sequence_name
            and end > shard.start
            and (shard.is_open_ended or read.alignment_start < shard.end)
        ]

        offset = int(page_token) if page_token else 0
        page = matches[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        next_token = str(next_offset) if next_offset < len(matches) else None
        return ReadPage(reads=page, next_page_token=next_token)


def boundary_reads(sequence_name="chr1", length=3_000_000, per_shard=10):
    """
    ``per_shard`` reads starting in every 1 Mb shard. The last read of each
    shard runs 50 bases into the next one.
    """
    reads = []
    for shard_start in range(0, length, SHARD):
        for i in range(per_shard - 1):
            start = shard_start + i * (SHARD // per_shard)
            reads.append((Read(f"{sequence_name}-{start}", sequence_name, start), start + 100))
        start = shard_start + SHARD - 50
        reads.append((Read(f"{sequence_name}-{start}", sequence_name, start), start + 100))
    return reads


@pytest.fixture
def synthetic_api():
    return SyntheticReadsApi(boundary_reads())


@pytest.fixture
def make_bam(tmp_path):
    """Write a coordinate-sorted, indexed BAM from ``(name, contig, start, length)`` tuples."""

    def _make(reads, references=(("chr1", 3_000_000),), filename="reads.bam"):
        path = tmp_path / filename
        header = {
            "HD": {"VN": "1.6", "SO": "coordinate"},
            "SQ": [{"SN": name, "LN": length} for name, length in references],
        }
        ref_index = {name: i for i, (name, _) in enumerate(references)}

        with pysam.AlignmentFile(str(path), "wb", header=header) as out:
            for name, contig, start, length in sorted(
                reads, key=lambda r: (ref_index[r[1]], r[2])
            ):
                segment = pysam.AlignedSegment(out.header)
                segment.query_name = name
                segment.query_sequence = "A" * length
                segment.flag = 0
                segment.reference_id = ref_index[contig]
                segment.reference_start = start
                segment.mapping_quality = 60
                segment.cigartuples = [(0, length)]
                segment.query_qualities = pysam.qualitystring_to_array("I" * length)
                out.write(segment)

        pysam.index(str(path))
        return str(path)

    return _make


@pytest.fixture
def boundary_bam(make_bam):
    """Same layout as the synthetic API: 10 reads per 1 Mb shard on chr1, plus chr2."""
    reads = []
    for read, end in boundary_reads():
        reads.append((read.id, read.sequence_name, read.alignment_start, end - read.alignment_start))
    for start in (10, 500_000, 999_990):
        reads.append((f"chr2-{start}", "chr2", start, 50))
    # chr1 is a little longer so the last crossing read stays on the contig
    return make_bam(reads, references=(("chr1", 3_100_000), ("chr2", 1_000_000)))
