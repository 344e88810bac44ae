"""Unit tests for Workspace."""

from pathlib import Path

import pytest

from chimpipe.pipeline_core import Workspace


class TestWorkspace:
    """Test suite for Workspace."""

    @pytest.fixture
    def workspace(self, tmp_path):
        """Create a workspace below tmp_path."""
        return Workspace(tmp_path / "out", "S1", tmp_path / "scratch")

    def test_layout(self, workspace, tmp_path):
        """Test the output directory layout."""
        out = tmp_path / "out"
        assert workspace.first_mapping_dir == out / "MappingPhase" / "FirstMapping"
        assert workspace.second_mapping_dir == out / "MappingPhase" / "SecondMapping"
        assert workspace.spliced_reads_dir == (
            out / "ChimeraDetectionPhase" / "ReadsSpanningSpliceJunctions"
        )
        assert workspace.chimeric_junctions_dir == (
            out / "ChimeraDetectionPhase" / "ChimericSpliceJunctions"
        )
        assert workspace.pe_support_dir == out / "ChimeraDetectionPhase" / "PEsupport"
        assert workspace.similarity_dir == out / "ChimeraDetectionPhase" / "genePairSim"
        assert workspace.staging_dir == tmp_path / "scratch" / "chimpipe_S1"

    def test_constructor_does_not_touch_filesystem(self, workspace, tmp_path):
        """Test that directories are only created on request."""
        assert not (tmp_path / "out").exists()

    def test_create_directories(self, workspace):
        """Test that the output layout is created but not the staging directory."""
        workspace.create_directories()

        for directory in (
            workspace.first_mapping_dir,
            workspace.second_mapping_dir,
            workspace.spliced_reads_dir,
            workspace.chimeric_junctions_dir,
            workspace.pe_support_dir,
            workspace.similarity_dir,
        ):
            assert directory.is_dir()
        assert not workspace.staging_dir.exists()

    def test_sample_file_names(self, workspace):
        """Test that outputs are named after the sample."""
        assert workspace.first_map.name == "S1_firstMap.map.gz"
        assert workspace.first_map_bam.name == "S1_firstMap.bam"
        assert workspace.filtered_bam.name == "S1_firstMap_filtered.bam"
        assert workspace.reads_to_remap.name == "S1_reads2remap.fastq"
        assert workspace.second_map.name == "S1_secondMap.map"
        assert workspace.staged_first_map == workspace.staging_dir / "S1_firstMap.map.gz"
        assert workspace.candidates.name == "chimeric_junctions_candidates_S1.txt"
        assert workspace.final_junctions.name == "chimeric_junctions_S1.txt"
        assert workspace.log_file(workspace.second_mapping_dir, "secondMap").name == (
            "S1_secondMap.log"
        )

    def test_exon_connections_follow_the_gff_name(self, workspace):
        """Test that exon connection files are derived from the GFF basename."""
        path = workspace.exon_connections(workspace.first_map_gff)
        assert path.parent == workspace.chimeric_junctions_dir
        assert path.name.endswith("_S1_readsSpanningSpliceJunctions_firstMap.txt.gz")

    def test_similarity_cache(self, workspace):
        """Test the cached similarity file name."""
        path = workspace.similarity_cache("gencode.v19")
        assert path == workspace.similarity_dir / (
            "gencode.v19_gene1_gene2_alphaorder_pcentsim_lgalign_trpair.txt"
        )

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("S1_firstMap.bam", "S1_firstMap.partial.bam"),
            ("S1_firstMap.map.gz", "S1_firstMap.map.partial.gz"),
            ("candidates.txt", "candidates.partial.txt"),
        ],
    )
    def test_partial_path_keeps_the_extension(self, name, expected):
        """Test that the partial marker goes before the last extension."""
        assert Workspace.partial_path(Path("/x") / name) == Path("/x") / expected
        assert Workspace.is_partial(expected)
        assert not Workspace.is_partial(name)

    def test_promote(self, workspace, tmp_path):
        """Test that promote moves the partial file onto the final name."""
        target = tmp_path / "result.txt"
        Workspace.partial_path(target).write_text("new")

        assert workspace.promote(target)
        assert target.read_text() == "new"
        assert not Workspace.partial_path(target).exists()
        assert not workspace.promote(target)

    def test_remove_partial(self, workspace, tmp_path):
        """Test that a stale partial file is deleted."""
        target = tmp_path / "result.txt"
        Workspace.partial_path(target).write_text("stale")

        workspace.remove_partial(target)

        assert not Workspace.partial_path(target).exists()

    def test_cleanup_scratch(self, workspace):
        """Test that cleanup removes staging and partial files but keeps outputs."""
        workspace.create_directories()
        workspace.staging_dir.mkdir(parents=True)
        (workspace.staging_dir / "genome.gem").write_text("index")
        workspace.partial_path(workspace.second_map).write_text("half")
        workspace.first_map_bam.write_text("bam")

        assert workspace.list_partials() == [workspace.partial_path(workspace.second_map)]
        workspace.cleanup_scratch()

        assert not workspace.staging_dir.exists()
        assert workspace.list_partials() == []
        assert workspace.first_map_bam.exists()

    def test_list_partials_without_output_dir(self, workspace):
        """Test that a missing output directory has no partial files."""
        assert workspace.list_partials() == []
