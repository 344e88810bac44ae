"""
PipelineContext - Single source of truth for pipeline state.

This module provides the PipelineContext dataclass that flows through all stages,
carrying the immutable configuration, the workspace, the staging cache and the
values discovered while the pipeline runs.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Set

if TYPE_CHECKING:
    from ..library_type import LibraryType
    from ..pipeline_config import PipelineConfig
    from ..staging import StagingCache
    from .workspace import Workspace

logger = logging.getLogger(__name__)

UNKNOWN_LIBRARY_PLACEHOLDER = "<seq-library>"


class StageStatus(Enum):
    """Terminal and initial states of a stage within one run."""

    PENDING = "pending"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class PipelineContext:
    """Container for all pipeline state - the single source of truth.

    Attributes
    ----------
    config : PipelineConfig
        Validated, immutable run configuration
    workspace : Workspace
        Manages all file paths for the pipeline run
    staging : StagingCache
        Copies reference files to the scratch directory once per run
    start_time : datetime
        Pipeline execution start time
    library_type : LibraryType, optional
        Sequencing library protocol, supplied by the user or inferred
    quality_offset : str, optional
        FASTQ quality offset ("33" or "64")
    nh_field : int, optional
        Column of the NH tag in the first-pass BAM records
    similarity_file : Path, optional
        Gene pair similarity file used by the similarity merge
    stage_status : Dict[str, StageStatus]
        Status of every stage of the run
    stage_times : Dict[str, float]
        Elapsed seconds of every executed stage
    """

    config: "PipelineConfig"
    workspace: "Workspace"
    staging: "StagingCache"
    start_time: datetime = field(default_factory=datetime.now)

    library_type: Optional["LibraryType"] = None
    quality_offset: Optional[str] = None
    nh_field: Optional[int] = None
    similarity_file: Optional[Path] = None

    stage_status: Dict[str, StageStatus] = field(default_factory=dict)
    stage_times: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.library_type is None:
            self.library_type = self.config.library_type
        if self.similarity_file is None:
            self.similarity_file = self.config.similarity_file

    @property
    def completed_stages(self) -> Set[str]:
        """Names of stages that were skipped or succeeded."""
        return {
            name
            for name, status in self.stage_status.items()
            if status in (StageStatus.SKIPPED, StageStatus.SUCCEEDED)
        }

    def set_status(self, stage_name: str, status: StageStatus) -> None:
        """Record the status of a stage."""
        self.stage_status[stage_name] = status
        logger.debug(f"Stage '{stage_name}' is {status.value}")

    def mark_complete(self, stage_name: str, skipped: bool = False) -> None:
        """Mark a stage as succeeded, or skipped when its outputs already existed."""
        self.set_status(stage_name, StageStatus.SKIPPED if skipped else StageStatus.SUCCEEDED)

    def is_complete(self, stage_name: str) -> bool:
        """Check if a stage was skipped or succeeded in this run."""
        return stage_name in self.completed_stages

    def status_of(self, stage_name: str) -> StageStatus:
        """Return the status of a stage, pending if it has not been reached."""
        return self.stage_status.get(stage_name, StageStatus.PENDING)

    @property
    def read_directionality(self) -> str:
        """Library protocol name handed to the helper scripts."""
        if self.library_type is None:
            return UNKNOWN_LIBRARY_PLACEHOLDER
        return self.library_type.value

    @property
    def stranded_flag(self) -> str:
        """'1' for strand-aware protocols, '0' otherwise."""
        if self.library_type is None:
            return "<stranded>"
        return str(self.library_type.stranded)

    @property
    def first_map_bam(self) -> Path:
        """First-pass alignments: the supplied BAM or the one produced by align_reads."""
        if self.config.prealigned:
            return self.config.bam
        return self.workspace.first_map_bam

    def tool_environment(self) -> Dict[str, str]:
        """Environment variables set for every external command."""
        return {
            "TMPDIR": str(self.config.scratch_dir),
            "rootDir": str(Path(self.config.scripts_dir).resolve().parent),
        }

    def get_execution_time(self) -> float:
        """Get the elapsed execution time in seconds."""
        return (datetime.now() - self.start_time).total_seconds()

    def __repr__(self) -> str:
        """Return string representation showing key state information."""
        return (
            f"PipelineContext("
            f"sample='{self.config.sample_id}', "
            f"stages_completed={len(self.completed_stages)}, "
            f"execution_time={self.get_execution_time():.1f}s)"
        )
