"""Tests for option validation and PipelineConfig construction."""

import dataclasses

import pytest

from chimpipe.config import load_config
from chimpipe.filters import FilterThreshold
from chimpipe.library_type import LibraryType
from chimpipe.pipeline_config import InputMode
from chimpipe.pipeline_core.error_handling import ConfigurationError, MissingInputError
from chimpipe.validators import (
    ConfigValidator,
    parse_bool,
    parse_positive_int,
    parse_unsigned_int,
    validate_log_level,
    validate_splice_consensus,
)


@pytest.mark.parametrize("value,expected", [("0", 0), ("15", 15), (2, 2)])
def test_parse_unsigned_int(value, expected):
    assert parse_unsigned_int(value, "--threads") == expected


@pytest.mark.parametrize("value", ["-1", "1.5", "ten", "", True, -3, None])
def test_parse_unsigned_int_rejects(value):
    with pytest.raises(ConfigurationError, match="--threads"):
        parse_unsigned_int(value, "--threads")


def test_parse_positive_int_rejects_zero():
    with pytest.raises(ConfigurationError, match="must be greater than 0"):
        parse_positive_int("0", "--threads")


@pytest.mark.parametrize(
    "value,expected", [(True, True), ("yes", True), ("1", True), ("false", False), ("NO", False)]
)
def test_parse_bool(value, expected):
    assert parse_bool(value, "--dry") is expected


def test_parse_bool_rejects():
    with pytest.raises(ConfigurationError):
        parse_bool("maybe", "--dry")


@pytest.mark.parametrize("value", ["GT+AG", "GT+AG,GC+AG,ATATC+A.,GTATC+AT", "..+.."])
def test_splice_consensus_accepts(value):
    assert validate_splice_consensus(value, "--consensus-ss-sm") == value


@pytest.mark.parametrize("value", ["GT-AG", "GT+AG,", "gt+ag", "GTN+AG", ""])
def test_splice_consensus_rejects(value):
    with pytest.raises(ConfigurationError, match="--consensus-ss-sm"):
        validate_splice_consensus(value, "--consensus-ss-sm")


def test_log_level():
    assert validate_log_level("debug", "--log") == "debug"
    with pytest.raises(ConfigurationError):
        validate_log_level("verbose", "--log")


class TestConfigValidator:
    """Test building the run configuration from raw options."""

    def test_pre_aligned_defaults(self, make_config, reference_files, output_dir, scratch_dir):
        """Test a pre-aligned configuration filled from the packaged defaults."""
        config = make_config()

        assert config.input_mode is InputMode.PRE_ALIGNED
        assert config.prealigned
        assert config.bam == reference_files["bam"]
        assert config.fastq1 is None
        assert config.threads == 1
        assert config.max_read_length == 150
        assert config.log_level == "warn"
        assert config.first_pass.splice_consensus == "GT+AG,GC+AG,ATATC+A.,GTATC+AT"
        assert config.first_pass.stats is True
        assert config.second_pass.splice_consensus == "GT+AG"
        assert config.second_pass.min_split_size == 15
        assert config.filter_configuration.thresholds == (
            FilterThreshold(5, 0, 80, 30),
            FilterThreshold(1, 1, 80, 30),
        )
        assert config.output_dir == output_dir.resolve()
        assert config.scratch_dir == scratch_dir.resolve()
        assert config.library_type is None
        assert config.similarity_file is None
        assert not config.keep_intermediates
        assert not config.dry_run
        assert config.tool("gem_rna_tools") == "gem-rna-tools"

    def test_raw_reads(self, make_config, reference_files):
        """Test a raw-reads configuration."""
        config = make_config(raw_reads=True, threads="8", seq_library="UNSTRANDED")

        assert config.input_mode is InputMode.RAW_READS
        assert config.fastq1 == reference_files["fastq_1"]
        assert config.transcriptome_keys == reference_files["transcriptome_keys"]
        assert config.threads == 8
        assert config.half_threads == 4
        assert config.library_type is LibraryType.UNSTRANDED

    def test_bam_and_fastq_are_exclusive(self, make_config, reference_files):
        """Test that BAM input cannot be combined with FASTQ input."""
        with pytest.raises(ConfigurationError, match="--bam"):
            make_config(fastq_1=str(reference_files["fastq_1"]))

    @pytest.mark.parametrize(
        "missing,flag",
        [("genome_index", "--genome-index"), ("annotation", "--annotation"), ("sample_id", "--sample-id")],
    )
    def test_missing_mandatory_option(self, make_config, missing, flag):
        """Test that a missing mandatory option names its flag."""
        with pytest.raises(ConfigurationError, match=f"'{flag}': is mandatory"):
            make_config(**{missing: None})

    def test_raw_reads_require_transcriptome(self, make_config):
        """Test that raw reads need the transcriptome files."""
        with pytest.raises(ConfigurationError, match="--transcriptome-keys"):
            make_config(raw_reads=True, transcriptome_keys=None)

    def test_missing_input_file(self, make_config, tmp_path):
        """Test that a nonexistent input raises MissingInputError."""
        with pytest.raises(MissingInputError, match="does not exist"):
            make_config(annotation=str(tmp_path / "absent.gtf"))

    def test_empty_input_file(self, make_config, tmp_path):
        """Test that an empty input raises MissingInputError."""
        empty = tmp_path / "empty.gem"
        empty.touch()
        with pytest.raises(MissingInputError, match="is empty"):
            make_config(genome_index=str(empty))

    def test_invalid_seq_library(self, make_config):
        """Test that an unknown protocol is rejected."""
        with pytest.raises(ConfigurationError, match="--seq-library"):
            make_config(seq_library="STRANDED")

    def test_invalid_filter_configuration(self, make_config):
        """Test that a malformed filter configuration is rejected."""
        with pytest.raises(ConfigurationError, match="--filter-chimeras"):
            make_config(filter_chimeras="5,0,80,30")

    def test_empty_similarity_bound(self, make_config):
        """Test that an empty similarity field places no similarity bound."""
        config = make_config(filter_chimeras="3,2,,30;")
        assert config.filter_configuration.thresholds == (FilterThreshold(3, 2, None, 30),)

    def test_missing_output_dir(self, make_config, tmp_path):
        """Test that the output directory must exist."""
        with pytest.raises(ConfigurationError, match="--output-dir"):
            make_config(output_dir=str(tmp_path / "nowhere"))

    def test_threads_must_be_positive(self, make_config):
        """Test that zero threads are rejected."""
        with pytest.raises(ConfigurationError, match="--threads"):
            make_config(threads="0")

    def test_thread_count_accepted(self, make_config):
        """Test that a plain integer thread count is accepted."""
        assert make_config(threads="4").threads == 4

    @pytest.mark.parametrize("threads", ["4.0", "-1", "four"])
    def test_thread_count_rejected(self, make_config, threads):
        """Test that non-integer thread counts are rejected by option name."""
        with pytest.raises(ConfigurationError, match="--threads"):
            make_config(threads=threads)

    def test_optional_similarity_file(self, make_config, tmp_path):
        """Test that a supplied similarity file must exist."""
        with pytest.raises(MissingInputError, match="--similarity-gene-pairs"):
            make_config(similarity_gene_pairs=str(tmp_path / "absent.txt"))

    def test_tool_overrides_are_merged(self, make_config):
        """Test that tool overrides keep the other defaults."""
        config = make_config(tools={"samtools": "/opt/samtools/bin/samtools"})
        assert config.tool("samtools") == "/opt/samtools/bin/samtools"
        assert config.tool("bedtools") == "bedtools"

    def test_scripts_dir_from_environment(self, base_options, monkeypatch):
        """Test that CHIMPIPE_SCRIPTS_DIR is used when no directory is configured."""
        monkeypatch.setenv("CHIMPIPE_SCRIPTS_DIR", "/srv/chimpipe/src")
        options = dict(base_options)
        del options["scripts_dir"]

        config = ConfigValidator(options, defaults=load_config()).validate()

        assert str(config.scripts_dir) == "/srv/chimpipe/src"
        assert str(config.script("sam_filter")) == "/srv/chimpipe/src/awk/SAMfilter.awk"

    def test_config_is_immutable(self, make_config):
        """Test that the validated configuration cannot be modified."""
        config = make_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.threads = 4
