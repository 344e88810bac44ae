"""Unit tests for PipelineContext."""

from pathlib import Path

from chimpipe.library_type import LibraryType
from chimpipe.pipeline_core import StageStatus


class TestPipelineContext:
    """Test suite for PipelineContext."""

    def test_initial_state_comes_from_config(self, make_context, reference_files):
        """Test that the user supplied protocol and similarity file seed the context."""
        context = make_context(
            seq_library="MATE2_SENSE", similarity_gene_pairs=str(reference_files["annotation"])
        )

        assert context.library_type is LibraryType.MATE2_SENSE
        assert context.similarity_file == reference_files["annotation"]
        assert context.quality_offset is None
        assert context.nh_field is None

    def test_stage_status_tracking(self, make_context):
        """Test status bookkeeping and completion checks."""
        context = make_context()

        assert context.status_of("align_reads") == StageStatus.PENDING
        context.mark_complete("align_reads", skipped=True)
        context.mark_complete("extract_unmapped_reads")
        context.set_status("remap_unmapped_reads", StageStatus.FAILED)

        assert context.status_of("align_reads") == StageStatus.SKIPPED
        assert context.completed_stages == {"align_reads", "extract_unmapped_reads"}
        assert context.is_complete("extract_unmapped_reads")
        assert not context.is_complete("remap_unmapped_reads")

    def test_placeholders_before_library_type_is_known(self, make_context):
        """Test that unknown protocol values render as placeholders."""
        context = make_context()

        assert context.read_directionality == "<seq-library>"
        assert context.stranded_flag == "<stranded>"

    def test_protocol_values(self, make_context):
        """Test the protocol name and strandedness flag handed to scripts."""
        context = make_context()

        context.library_type = LibraryType.MATE1_SENSE
        assert context.read_directionality == "MATE1_SENSE"
        assert context.stranded_flag == "1"

        context.library_type = LibraryType.UNSTRANDED
        assert context.stranded_flag == "0"

    def test_first_map_bam_for_each_mode(self, make_context):
        """Test that pre-aligned runs read the supplied BAM."""
        context = make_context()
        assert context.first_map_bam == context.config.bam

        raw = make_context(raw_reads=True)
        assert raw.first_map_bam == raw.workspace.first_map_bam

    def test_tool_environment(self, make_context, scratch_dir):
        """Test TMPDIR and rootDir given to external tools."""
        context = make_context(scripts_dir="/opt/chimpipe/src")

        env = context.tool_environment()

        assert env["TMPDIR"] == str(scratch_dir.resolve())
        assert env["rootDir"] == str(Path("/opt/chimpipe/src").resolve().parent)

    def test_repr(self, make_context):
        """Test the string representation."""
        context = make_context()
        assert "sample='S1'" in repr(context)
