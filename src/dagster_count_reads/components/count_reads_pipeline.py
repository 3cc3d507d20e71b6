"""
Count Reads Pipeline Component

A component that plans shards, counts each shard in its own op and sums
the per-shard counts into one global count.
"""

import time
from typing import Optional

import dagster
from dagster import DynamicOut, DynamicOutput, OpExecutionContext, job, op

from ..config import PipelineConfig
from ..pipeline import (
    count_reads_for_config,
    make_metadata,
    make_shard_fetcher,
    open_remote_source,
    plan_requests,
)
from .counter import ReadCounter, count_reads, write_count
from .errors import ConfigurationError
from .genomics_api import DEFAULT_TIMEOUT_SECONDS, GENOMICS_API_URL
from .intervals import DEFAULT_SHARD_LENGTH
from .paginator import DEFAULT_MAX_RETRIES
from .sharded_source import format_progress, read_shard
from .types import ApiFetchRequest, FetchRequest


class CountReadsPipeline(dagster.Model, dagster.Resolvable):
    """
    Read counting pipeline component.

    Builds a job that fans out one op per shard request (dynamic outputs)
    and collects the shard counts into a single total, written to
    ``output_path``. With ``shard_bam_reading`` off, the job is a single op
    scanning the BAM file sequentially.
    """

    name: str = "count_reads"
    references: str = ""
    bam_path: str = ""
    read_group_set_id: str = ""
    shard_bam_reading: bool = True
    shard_length: int = DEFAULT_SHARD_LENGTH
    max_retries: int = DEFAULT_MAX_RETRIES
    page_size: int = 0
    output_path: Optional[str] = None
    api_key: Optional[str] = None
    api_base_url: str = GENOMICS_API_URL
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS

    def to_pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            references=self.references,
            bam_path=self.bam_path,
            read_group_set_id=self.read_group_set_id,
            shard_bam_reading=self.shard_bam_reading,
            shard_length=self.shard_length,
            max_retries=self.max_retries,
            page_size=self.page_size,
            output_path=self.output_path,
            api_key=self.api_key,
            api_base_url=self.api_base_url,
            request_timeout=self.request_timeout,
        )

    def _build_sequential_job(self, config: PipelineConfig):
        @op(
            name=f"{self.name}_count_reads_sequentially",
            description="Counts reads with one sequential scan of the BAM file",
        )
        def count_reads_sequentially(context: OpExecutionContext) -> int:
            context.log.info(f"Scanning {config.bam_path} without sharding")
            total = count_reads_for_config(config)
            write_count(total, config.output_path)
            context.log.info(f"Total reads: {total:,}")
            return total

        @job(name=self.name)
        def count_reads_job():
            count_reads_sequentially()

        return count_reads_job

    def build_job(self):
        config = self.to_pipeline_config().validate()
        if config.uses_bam and not config.shard_bam_reading:
            return self._build_sequential_job(config)

        @op(name=f"{self.name}_plan_read_shards", out=DynamicOut())
        def plan_read_shards(context: OpExecutionContext):
            """
            Splits the configured regions into shards and yields one fetch
            request per shard as a dynamic output.
            """
            with open_remote_source(config) as remote_source:
                requests = plan_requests(config, make_metadata(config, remote_source))
            if not requests:
                raise ConfigurationError("No reference sequences to count reads over")

            context.log.info(f"🎯 Planned {len(requests)} shards")
            for index, request in enumerate(requests):
                yield DynamicOutput(
                    request,
                    f"shard_{index}",
                    metadata={
                        "shard": str(request.shard),
                        "source": "api" if isinstance(request, ApiFetchRequest) else "bam",
                    },
                )

        @op(name=f"{self.name}_count_shard_reads")
        def count_shard_reads(context: OpExecutionContext, request: FetchRequest) -> int:
            """Fetches one shard and counts the reads that start inside it."""
            start_time = time.time()
            try:
                with open_remote_source(config) as remote_source:
                    fetch = make_shard_fetcher(config, remote_source)
                    shard_total = count_reads(read_shard(request, fetch))
            except Exception as e:
                context.log.error(f"❌ Shard {request.shard} failed: {e}")
                raise

            elapsed_time = time.time() - start_time
            rate = shard_total / elapsed_time if elapsed_time > 0 else 0
            context.log.info(f"✅ {request.shard}: {shard_total:,} reads ({rate:.0f} reads/sec)")
            return shard_total

        @op(name=f"{self.name}_sum_shard_counts")
        def sum_shard_counts(context: OpExecutionContext, shard_counts: list) -> int:
            """Adds up the shard counts and writes the total."""
            counter = ReadCounter()
            for shard_total in shard_counts:
                counter.add(shard_total)
                context.log.debug(format_progress(counter.parts, len(shard_counts), counter.total))

            write_count(counter.total, config.output_path)

            context.log.info("📊 Final Summary:")
            context.log.info(f"   Shards counted: {counter.parts}")
            context.log.info(f"   Total reads: {counter.total:,}")
            return counter.total

        @job(name=self.name)
        def count_reads_job():
            """
            Job that counts reads shard by shard.

            Shards are counted independently (in parallel under a multiprocess
            executor); the total is only written once every shard succeeded.
            """
            shard_counts = plan_read_shards().map(count_shard_reads)
            sum_shard_counts(shard_counts.collect())

        return count_reads_job

    def build_defs(self, context):
        return dagster.Definitions(jobs=[self.build_job()])
