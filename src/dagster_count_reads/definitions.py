import logging
import os

# Configure logging to reduce verbosity - set at the very beginning
logging.basicConfig(level=logging.WARNING, force=True)
logging.getLogger("dagster").setLevel(logging.ERROR)
logging.getLogger("dagster._core").setLevel(logging.ERROR)

from dagster import definitions
from dagster.components.core.component_tree import ComponentTree

from .components.count_reads_pipeline import CountReadsPipeline

BAM_URL = "https://s3.amazonaws.com/1000genomes/phase3/data/HG00096/alignment/HG00096.chrom20.ILLUMINA.bwa.GBR.low_coverage.20120522.bam"


@definitions
def defs():
    context = ComponentTree.for_test().load_context

    # Environment overrides so the same definitions can point at the API
    pipeline = CountReadsPipeline(
        name="count_reads",
        bam_path=os.environ.get("COUNT_READS_BAM_PATH", BAM_URL),
        read_group_set_id=os.environ.get("COUNT_READS_READ_GROUP_SET_ID", ""),
        references=os.environ.get("COUNT_READS_REFERENCES", "20:0:3000000"),
        shard_bam_reading=os.environ.get("COUNT_READS_SHARD_BAM", "true").lower() != "false",
        api_key=os.environ.get("GOOGLE_API_KEY"),
        output_path=os.environ.get("COUNT_READS_OUTPUT", "output/read_count.txt"),
    )

    return pipeline.build_defs(context)
