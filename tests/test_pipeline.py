"""
Tests for configuration validation and in-process runs.
"""

import pytest

from conftest import SyntheticReadsApi, boundary_reads
from dagster_count_reads import pipeline
from dagster_count_reads.components.errors import (
    ConfigurationError,
    CountReadsError,
    FatalFetchError,
    InvalidRangeError,
    RetriableFetchError,
)
from dagster_count_reads.components.metadata import StaticSequenceMetadata
from dagster_count_reads.config import PipelineConfig
from dagster_count_reads.pipeline import count_reads_for_config, run_count_reads

METADATA = StaticSequenceMetadata({"chr1": 3_000_000})


def test_config_defaults():
    config = PipelineConfig(read_group_set_id="rgs-1")

    assert config.shard_length == 1_000_000
    assert config.max_retries == 10
    assert config.page_size == 0
    assert config.shard_bam_reading is True
    assert config.validate() is config


def test_config_requires_a_source():
    with pytest.raises(ConfigurationError):
        PipelineConfig(references="chr1").validate()


@pytest.mark.parametrize(
    "overrides",
    [{"shard_length": 0}, {"max_retries": -1}, {"page_size": -5}, {"max_workers": 0}],
)
def test_config_rejects_bad_limits(overrides):
    with pytest.raises(ConfigurationError):
        PipelineConfig(read_group_set_id="rgs-1", **overrides).validate()


def test_config_rejects_bad_region_before_fetching():
    api = SyntheticReadsApi(boundary_reads())
    config = PipelineConfig(read_group_set_id="rgs-1", references="chr1:10:5")

    with pytest.raises(InvalidRangeError):
        run_count_reads(config, remote_source=api, metadata=METADATA)
    assert api.calls == []


def test_bam_path_takes_precedence():
    config = PipelineConfig(bam_path="x.bam", read_group_set_id="rgs-1")

    assert config.uses_bam
    assert config.source().path == "x.bam"


def test_api_run_writes_count(tmp_path):
    output = tmp_path / "count.txt"
    config = PipelineConfig(
        read_group_set_id="rgs-1",
        references="chr1:0:3000000",
        output_path=str(output),
        page_size=3,
    )

    total = run_count_reads(config, remote_source=SyntheticReadsApi(boundary_reads()), metadata=METADATA)

    assert total == 30
    assert output.read_text() == "30\n"


def test_api_run_over_whole_genome():
    config = PipelineConfig(read_group_set_id="rgs-1", shard_length=250_000)

    total = count_reads_for_config(
        config, remote_source=SyntheticReadsApi(boundary_reads()), metadata=METADATA
    )

    assert total == 30


class AlwaysUnavailable:
    def __init__(self):
        self.calls = 0

    def search_reads(self, request, page_token=None):
        self.calls += 1
        raise RetriableFetchError("HTTP 503")


def test_failed_run_writes_nothing(tmp_path):
    output = tmp_path / "count.txt"
    config = PipelineConfig(
        read_group_set_id="rgs-1",
        references="chr1:0:1000",
        max_retries=2,
        output_path=str(output),
    )
    source = AlwaysUnavailable()

    with pytest.raises(FatalFetchError) as exc_info:
        run_count_reads(config, remote_source=source, metadata=METADATA)

    assert "chr1:[0,1000)" in str(exc_info.value)
    assert source.calls == 3
    assert not output.exists()


def test_bam_run_sharded_and_sequential_agree(boundary_bam, tmp_path):
    sharded = PipelineConfig(bam_path=boundary_bam, references="chr1:0:3000000,chr2")
    sequential = PipelineConfig(
        bam_path=boundary_bam, references="chr1:0:3000000,chr2", shard_bam_reading=False
    )

    assert run_count_reads(sharded) == 33
    assert run_count_reads(sequential) == 33


def test_bam_run_over_whole_genome(boundary_bam):
    assert count_reads_for_config(PipelineConfig(bam_path=boundary_bam)) == 33
    assert count_reads_for_config(PipelineConfig(bam_path=boundary_bam, shard_bam_reading=False)) == 33


class ClosingReadsApi(SyntheticReadsApi):
    """Synthetic API that records whether it was closed, like a client session."""

    def __init__(self, reads):
        super().__init__(reads)
        self.closed = False

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def test_api_run_closes_the_client_it_opens(monkeypatch):
    api = ClosingReadsApi(boundary_reads())
    opened = []

    def fake_client(config):
        opened.append(config)
        return api

    monkeypatch.setattr(pipeline, "make_api_client", fake_client)
    config = PipelineConfig(read_group_set_id="rgs-1", references="chr1:0:3000000")

    assert count_reads_for_config(config, metadata=METADATA) == 30
    assert len(opened) == 1
    assert api.closed


def test_api_run_closes_the_client_on_failure(monkeypatch):
    api = ClosingReadsApi([])
    monkeypatch.setattr(pipeline, "make_api_client", lambda config: api)
    config = PipelineConfig(read_group_set_id="rgs-1", references="chr1:10:5")

    with pytest.raises(InvalidRangeError):
        count_reads_for_config(config, metadata=METADATA)

    assert api.closed


def test_caller_supplied_source_is_left_open():
    api = ClosingReadsApi(boundary_reads())
    config = PipelineConfig(read_group_set_id="rgs-1", references="chr1:0:3000000")

    assert count_reads_for_config(config, remote_source=api, metadata=METADATA) == 30
    assert not api.closed


@pytest.mark.parametrize("shard_bam_reading", [True, False])
def test_unknown_contig_fails_both_bam_paths(boundary_bam, tmp_path, shard_bam_reading):
    output = tmp_path / "count.txt"
    config = PipelineConfig(
        bam_path=boundary_bam,
        references="chrZ:0:1000",
        shard_bam_reading=shard_bam_reading,
        output_path=str(output),
    )

    with pytest.raises(FatalFetchError) as exc_info:
        run_count_reads(config)

    assert exc_info.value.interval.sequence_name == "chrZ"
    assert not output.exists()


@pytest.mark.parametrize("shard_bam_reading", [True, False])
def test_missing_bam_is_a_clean_error(tmp_path, shard_bam_reading):
    config = PipelineConfig(
        bam_path=str(tmp_path / "missing.bam"), shard_bam_reading=shard_bam_reading
    )

    with pytest.raises(CountReadsError):
        run_count_reads(config)
