"""
Run configuration for read counting.
"""

from dataclasses import dataclass
from typing import List, Optional

from .components.errors import ConfigurationError
from .components.genomics_api import DEFAULT_TIMEOUT_SECONDS, GENOMICS_API_URL
from .components.intervals import DEFAULT_SHARD_LENGTH, Interval, parse_regions
from .components.paginator import DEFAULT_MAX_RETRIES
from .components.shard_requests import ApiSource, FileSource, ReadSourceSpec
from .components.sharded_source import DEFAULT_MAX_WORKERS


@dataclass(frozen=True)
class PipelineConfig:
    """
    Read-only settings for one counting run.

    references: comma-separated ``name[:start[:end]]`` regions; empty means
        every sequence in the reference.
    bam_path: BAM file (local path or URL) to read from. Takes precedence
        over ``read_group_set_id``.
    read_group_set_id: read group set to page through in the reads API.
    shard_bam_reading: shard BAM reading; when False the file is scanned
        once, sequentially, for checking the sharded path.
    shard_length: maximum bases per shard.
    max_retries: retries per page request on transient failures.
    page_size: reads per API page, 0 for the API default.
    max_workers: shards fetched concurrently.
    output_path: where the count is written, stdout when unset.
    """

    references: str = ""
    bam_path: str = ""
    read_group_set_id: str = ""
    shard_bam_reading: bool = True
    shard_length: int = DEFAULT_SHARD_LENGTH
    max_retries: int = DEFAULT_MAX_RETRIES
    page_size: int = 0
    max_workers: int = DEFAULT_MAX_WORKERS
    output_path: Optional[str] = None
    api_key: Optional[str] = None
    api_base_url: str = GENOMICS_API_URL
    request_timeout: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def uses_bam(self) -> bool:
        return bool(self.bam_path)

    def regions(self) -> List[Interval]:
        return parse_regions(self.references)

    def source(self) -> ReadSourceSpec:
        if self.bam_path:
            return FileSource(self.bam_path)
        if self.read_group_set_id:
            return ApiSource(self.read_group_set_id, page_size=self.page_size)
        raise ConfigurationError("Either a BAM file or a read group set must be specified")

    def validate(self) -> "PipelineConfig":
        """Check the settings once before anything is fetched."""
        self.source()

        if self.shard_length <= 0:
            raise ConfigurationError(f"shard_length must be positive, got {self.shard_length}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.page_size < 0:
            raise ConfigurationError(f"page_size cannot be negative, got {self.page_size}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

        # Malformed regions fail here, before any fetch starts
        self.regions()
        return self
