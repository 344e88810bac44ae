"""Shared pytest fixtures for all test modules."""

from pathlib import Path
from typing import Any, Callable, Dict
from unittest.mock import patch

import pytest

from chimpipe.config import load_config
from chimpipe.pipeline import create_context
from chimpipe.pipeline_config import PipelineConfig
from chimpipe.pipeline_core import PipelineContext
from chimpipe.validators import ConfigValidator

from tests.mocks import FIRST_SAM_RECORD, MockToolchain


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def reference_files(tmp_path) -> Dict[str, Path]:
    """Create small non-empty stand-ins for every input file."""
    inputs = tmp_path / "inputs"
    return {
        "fastq_1": _write(inputs / "reads_1.fastq", "@r1/1\nACGT\n+\nIIII\n"),
        "fastq_2": _write(inputs / "reads_2.fastq", "@r1/2\nTGCA\n+\nIIII\n"),
        "bam": _write(inputs / "sample.bam", "BAM\x01"),
        "genome_index": _write(inputs / "genome.gem", "GEM index"),
        "annotation": _write(inputs / "gencode.gtf", 'chr1\tHAVANA\texon\t1\t100\t.\t+\t.\tgene_id "G1";\n'),
        "transcriptome_index": _write(inputs / "gencode.gtf.junctions.gem", "GEM t-index"),
        "transcriptome_keys": _write(inputs / "gencode.gtf.junctions.keys", "keys"),
    }


@pytest.fixture
def output_dir(tmp_path) -> Path:
    path = tmp_path / "output"
    path.mkdir()
    return path


@pytest.fixture
def scratch_dir(tmp_path) -> Path:
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def base_options(reference_files, output_dir, scratch_dir) -> Dict[str, Any]:
    """Options for a pre-aligned run of sample S1 with the packaged defaults."""
    return {
        "bam": str(reference_files["bam"]),
        "genome_index": str(reference_files["genome_index"]),
        "annotation": str(reference_files["annotation"]),
        "sample_id": "S1",
        "output_dir": str(output_dir),
        "tmp_dir": str(scratch_dir),
        "scripts_dir": "/opt/chimpipe/src",
    }


@pytest.fixture
def raw_read_options(base_options, reference_files) -> Dict[str, Any]:
    """Options for a raw-reads run of sample S1."""
    options = {key: value for key, value in base_options.items() if key != "bam"}
    for key in ("fastq_1", "fastq_2", "transcriptome_index", "transcriptome_keys"):
        options[key] = str(reference_files[key])
    return options


@pytest.fixture
def make_config(base_options, raw_read_options) -> Callable[..., PipelineConfig]:
    """Factory validating the pre-aligned (or raw-reads) options with keyword overrides.

    An override of None removes the option.
    """

    def factory(raw_reads: bool = False, **overrides) -> PipelineConfig:
        options = dict(raw_read_options if raw_reads else base_options)
        options.update(overrides)
        options = {key: value for key, value in options.items() if value is not None}
        return ConfigValidator(options, defaults=load_config()).validate()

    return factory


@pytest.fixture
def make_context(make_config) -> Callable[..., PipelineContext]:
    """Factory creating a context, with its output layout, for a configuration."""

    def factory(config: PipelineConfig = None, **overrides) -> PipelineContext:
        if config is None:
            config = make_config(**overrides)
        context = create_context(config)
        context.workspace.create_directories()
        return context

    return factory


@pytest.fixture
def toolchain():
    """Replace every external command with MockToolchain and yield it."""
    mock_toolchain = MockToolchain()
    with patch("chimpipe.stages.stage_utils.run_command", side_effect=mock_toolchain), patch(
        "chimpipe.stages.mapping_stages.read_first_line", return_value=FIRST_SAM_RECORD
    ), patch("chimpipe.pipeline.check_external_tools", return_value=True):
        yield mock_toolchain
