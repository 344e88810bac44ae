# File: chimpipe/pipeline_config.py
# Location: chimpipe/chimpipe/pipeline_config.py

"""
Immutable run configuration.

A PipelineConfig is built once by the ConfigValidator and passed to every
stage and component. Nothing in the pipeline mutates it.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from .filters import FilterConfiguration
from .library_type import LibraryType


class InputMode(Enum):
    """How reads enter the pipeline."""

    RAW_READS = "raw-reads"
    PRE_ALIGNED = "pre-aligned"


@dataclass(frozen=True)
class MappingParameters:
    """Segmental mapping parameters for one mapping pass."""

    splice_consensus: str
    min_split_size: int
    refinement_step: int
    stats: bool = True


@dataclass(frozen=True)
class PipelineConfig:
    """Validated configuration for a single sample run."""

    sample_id: str
    input_mode: InputMode
    genome_index: Path
    annotation: Path
    output_dir: Path
    scratch_dir: Path
    first_pass: MappingParameters
    second_pass: MappingParameters
    filter_configuration: FilterConfiguration
    fastq1: Optional[Path] = None
    fastq2: Optional[Path] = None
    bam: Optional[Path] = None
    transcriptome_index: Optional[Path] = None
    transcriptome_keys: Optional[Path] = None
    log_level: str = "warn"
    threads: int = 1
    max_read_length: int = 150
    library_type: Optional[LibraryType] = None
    similarity_file: Optional[Path] = None
    keep_intermediates: bool = False
    dry_run: bool = False
    scripts_dir: Path = Path("scripts")
    tools: Dict[str, str] = field(default_factory=dict, compare=False)
    scripts: Dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def half_threads(self) -> int:
        """Threads for each side of a two-process pipe (converter plus compressor)."""
        if self.threads == 1:
            return 1
        return self.threads // 2

    @property
    def prealigned(self) -> bool:
        """Return True when a BAM file was supplied instead of FASTQ reads."""
        return self.input_mode is InputMode.PRE_ALIGNED

    @property
    def annotation_stem(self) -> str:
        """Annotation basename without its .gtf/.gff extension."""
        name = self.annotation.name
        for extension in (".gtf", ".gff"):
            if name.endswith(extension):
                name = name[: -len(extension)]
        return name

    def tool(self, name: str) -> str:
        """Return the executable configured for an external tool."""
        return self.tools.get(name, name)

    def script(self, name: str) -> Path:
        """Return the path of a bundled helper script."""
        return self.scripts_dir / self.scripts[name]
