#!/usr/bin/env python3

import argparse
import logging
import sys

from dagster_count_reads.components.errors import CountReadsError
from dagster_count_reads.components.intervals import DEFAULT_SHARD_LENGTH
from dagster_count_reads.components.paginator import DEFAULT_MAX_RETRIES
from dagster_count_reads.components.sharded_source import DEFAULT_MAX_WORKERS
from dagster_count_reads.config import PipelineConfig
from dagster_count_reads.pipeline import run_count_reads

logger = logging.getLogger("count_reads")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Count reads from a BAM file or a read group set in the reads API."
    )
    parser.add_argument("--bam-file-path", default="", help="BAM file (path or URL) to count.")
    parser.add_argument(
        "--read-group-set-id", default="", help="Read group set to count through the API."
    )
    parser.add_argument(
        "--references",
        default="",
        help="Comma-separated name[:start[:end]] regions. Default: every sequence.",
    )
    parser.add_argument(
        "--no-shard-bam-reading",
        dest="shard_bam_reading",
        action="store_false",
        help="Scan the BAM file sequentially instead of by shard.",
    )
    parser.add_argument("--shard-length", type=int, default=DEFAULT_SHARD_LENGTH)
    parser.add_argument("--number-of-retries", type=int, default=DEFAULT_MAX_RETRIES)
    parser.add_argument("--page-size", type=int, default=0)
    parser.add_argument("--max-workers", type=int, default=DEFAULT_MAX_WORKERS)
    parser.add_argument("--api-key", default=None)
    parser.add_argument("--output", default=None, help="Output file, stdout if omitted.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Run read counting."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = PipelineConfig(
        references=args.references,
        bam_path=args.bam_file_path,
        read_group_set_id=args.read_group_set_id,
        shard_bam_reading=args.shard_bam_reading,
        shard_length=args.shard_length,
        max_retries=args.number_of_retries,
        page_size=args.page_size,
        max_workers=args.max_workers,
        output_path=args.output,
        api_key=args.api_key,
    )

    try:
        run_count_reads(config)
    except CountReadsError as e:
        logger.error(f"❌ Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
