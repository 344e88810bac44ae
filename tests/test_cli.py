"""Tests for the command-line interface."""

import json
import logging
from unittest.mock import patch

import pytest

from chimpipe.cli import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    EXIT_USAGE,
    build_options,
    configure_logging,
    main,
    parse_args,
)
from chimpipe.pipeline_config import PipelineConfig
from chimpipe.pipeline_core.error_handling import StageExecutionError


@pytest.fixture
def argv(reference_files, output_dir, scratch_dir):
    """Command line for a pre-aligned run."""
    return [
        "--bam",
        str(reference_files["bam"]),
        "-g",
        str(reference_files["genome_index"]),
        "-a",
        str(reference_files["annotation"]),
        "--sample-id",
        "S1",
        "-o",
        str(output_dir),
        "--tmp-dir",
        str(scratch_dir),
        "--scripts-dir",
        "/opt/chimpipe/src",
    ]


class TestArgumentParsing:
    """Test argument parsing and option layering."""

    def test_flags_are_unset_by_default(self):
        """Test that unset options parse to None so defaults apply."""
        args = parse_args([])
        assert args.dry_run is None
        assert args.keep_intermediates is None
        assert args.mapping_stats is None
        assert args.threads is None

    def test_switches(self):
        """Test the store_const switches."""
        args = parse_args(["--dry", "--no-cleanup", "--no-stats", "-l", "MATE1_SENSE"])
        assert args.dry_run is True
        assert args.keep_intermediates is True
        assert args.mapping_stats is False
        assert args.seq_library == "MATE1_SENSE"

    def test_short_options(self):
        """Test the short forms of the mapping options."""
        args = parse_args(
            ["-C", "GT+AG", "-S", "20", "-c", "GC+AG", "-s", "18", "-t", "t.gem", "-k", "t.keys"]
        )
        assert args.consensus_ss_fm == "GT+AG"
        assert args.min_split_size_fm == "20"
        assert args.consensus_ss_sm == "GC+AG"
        assert args.min_split_size_sm == "18"
        assert args.transcriptome_index == "t.gem"
        assert args.transcriptome_keys == "t.keys"

    def test_config_file_is_layered_between_defaults_and_cli(self, tmp_path):
        """Test that the command line overrides the config file, which overrides defaults."""
        config_file = tmp_path / "chimpipe.json"
        config_file.write_text(
            json.dumps({"threads": 4, "filter_chimeras": "1,1,50,30;", "tools": {"awk": "gawk"}})
        )

        options = build_options(parse_args(["--config", str(config_file), "--threads", "8"]))

        assert options["threads"] == "8"
        assert options["filter_chimeras"] == "1,1,50,30;"
        assert options["max_read_length"] == 150
        assert options["tools"]["awk"] == "gawk"
        assert options["tools"]["samtools"] == "samtools"
        assert "config" not in options

    def test_version(self, capsys):
        """Test that --version prints the version and exits."""
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "chimpipe" in capsys.readouterr().out


class TestMain:
    """Test exit codes of the entry point."""

    def test_success(self, argv):
        """Test that a successful run exits with 0."""
        with patch("chimpipe.cli.run_pipeline") as run_pipeline:
            assert main(argv + ["--threads", "2"]) == EXIT_SUCCESS

        (config,) = run_pipeline.call_args.args
        assert isinstance(config, PipelineConfig)
        assert config.sample_id == "S1"
        assert config.threads == 2

    def test_missing_mandatory_option_prints_usage(self, argv, capsys):
        """Test that a missing option exits with 2 and prints usage."""
        argv = argv[2:]  # drop --bam, leaving neither BAM nor FASTQ input

        with patch("chimpipe.cli.run_pipeline") as run_pipeline:
            assert main(argv) == EXIT_USAGE

        run_pipeline.assert_not_called()
        assert "usage: chimpipe" in capsys.readouterr().err

    def test_missing_input_file(self, argv, tmp_path):
        """Test that a nonexistent input exits with 2."""
        argv[argv.index("-a") + 1] = str(tmp_path / "absent.gtf")

        with patch("chimpipe.cli.run_pipeline"):
            assert main(argv) == EXIT_USAGE

    def test_invalid_value(self, argv):
        """Test that a malformed option value exits with 2."""
        with patch("chimpipe.cli.run_pipeline"):
            assert main(argv + ["--filter-chimeras", "5,0,80"]) == EXIT_USAGE

    def test_unreadable_config_file(self, argv, tmp_path):
        """Test that a broken --config file exits with 2."""
        config_file = tmp_path / "broken.json"
        config_file.write_text("{not json")

        with patch("chimpipe.cli.run_pipeline"):
            assert main(argv + ["--config", str(config_file)]) == EXIT_USAGE

    def test_pipeline_failure(self, argv):
        """Test that a failing stage exits with 1."""
        error = StageExecutionError("remap_unmapped_reads", "gem-rna-tools exited with 1")
        with patch("chimpipe.cli.run_pipeline", side_effect=error):
            assert main(argv) == EXIT_FAILURE

    @pytest.mark.parametrize(
        "error",
        [
            PermissionError("Permission denied: '/out/MappingPhase'"),
            ValueError("Stage 'b' must run after 'a'"),
        ],
    )
    def test_setup_failure(self, argv, error, caplog):
        """Test that directory and stage order errors exit with 1 and a message."""
        with patch("chimpipe.cli.run_pipeline", side_effect=error):
            assert main(argv) == EXIT_FAILURE

        assert str(error) in caplog.text


def test_configure_logging_writes_to_file(tmp_path):
    """Test that --log-file adds a file handler at the chosen level."""
    log_file = tmp_path / "logs" / "run.log"
    logger = logging.getLogger("chimpipe")
    handlers = list(logger.handlers)
    try:
        configure_logging("debug", str(log_file))
        assert logger.level == logging.DEBUG
        logger.debug("hello from the test")
        for handler in logger.handlers:
            handler.flush()
        assert "hello from the test" in log_file.read_text()
    finally:
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
