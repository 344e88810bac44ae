# File: chimpipe/pipeline.py
# Location: chimpipe/chimpipe/pipeline.py

"""
Pipeline assembly and entry point.

This module builds the fixed list of stages for a validated configuration,
prints the run configuration and hands the stages to the PipelineRunner.
"""

import logging
from pathlib import Path
from typing import List

from jinja2 import Environment, FileSystemLoader

from .pipeline_config import PipelineConfig
from .pipeline_core import PipelineContext, PipelineRunner, Stage, Workspace
from .pipeline_core.error_handling import ToolNotFoundError
from .staging import StagingCache
from .stages import (
    AlignReadsStage,
    CandidateMatrixStage,
    ChimericJunctionsStage,
    CleanupStage,
    ExonConnectionsStage,
    ExtractUnmappedReadsStage,
    FinalFilteringStage,
    GeneSimilarityStage,
    LibraryTypeInferenceStage,
    PairedEndMergeStage,
    PairedEndSupportStage,
    RemapUnmappedReadsStage,
    SimilarityMergeStage,
    SplicedReadsStage,
    UniqueMappingFilterStage,
)
from .utils import check_external_tools, missing_external_tools
from .version import __version__

logger = logging.getLogger("chimpipe")

# Tools only needed when the first mapping is run
FIRST_MAPPING_TOOLS = ("gemtools", "gt_filter_remove", "gem_2_sam", "pigz", "cp")


def build_pipeline_stages(config: PipelineConfig) -> List[Stage]:
    """
    Build the ordered list of stages for a run.

    Parameters
    ----------
    config : PipelineConfig
        Validated run configuration.

    Returns
    -------
    List[Stage]
        Stages in execution order. The first mapping is omitted for BAM
        input, library inference when the protocol is given, and cleanup
        when intermediate files are kept.
    """
    stages: List[Stage] = []

    if not config.prealigned:
        stages.append(AlignReadsStage())
    stages.append(ExtractUnmappedReadsStage())
    stages.append(RemapUnmappedReadsStage())
    if config.library_type is None:
        stages.append(LibraryTypeInferenceStage())
    stages.extend(
        [
            UniqueMappingFilterStage(),
            SplicedReadsStage(),
            ExonConnectionsStage(),
            ChimericJunctionsStage(),
            PairedEndSupportStage(),
            PairedEndMergeStage(),
            GeneSimilarityStage(),
            SimilarityMergeStage(),
            CandidateMatrixStage(),
            FinalFilteringStage(),
        ]
    )
    if not config.keep_intermediates:
        stages.append(CleanupStage())

    logger.debug(f"Pipeline stages: {[stage.name for stage in stages]}")
    return stages


def required_tools(config: PipelineConfig) -> List[str]:
    """Return the executables a real run of this configuration needs."""
    return [
        executable
        for name, executable in config.tools.items()
        if not (config.prealigned and name in FIRST_MAPPING_TOOLS)
    ]


def render_run_configuration(config: PipelineConfig) -> str:
    """Render the run configuration banner printed before execution."""
    templates_dir = Path(__file__).parent / "templates"
    if not templates_dir.exists():
        raise FileNotFoundError(f"Templates directory not found at: {templates_dir}")

    env = Environment(loader=FileSystemLoader(str(templates_dir)), keep_trailing_newline=True)
    template = env.get_template("run_configuration.txt")
    return template.render(config=config, version=__version__)


def create_context(config: PipelineConfig) -> PipelineContext:
    """Create the workspace, staging cache and context of a run."""
    workspace = Workspace(config.output_dir, config.sample_id, config.scratch_dir)
    staging = StagingCache(config, workspace.staging_dir)
    return PipelineContext(config=config, workspace=workspace, staging=staging)


def run_pipeline(config: PipelineConfig) -> PipelineContext:
    """
    Run the chimeric junction detection pipeline for one sample.

    Parameters
    ----------
    config : PipelineConfig
        Validated run configuration.

    Returns
    -------
    PipelineContext
        The final context, holding the status of every stage.

    Raises
    ------
    ToolNotFoundError
        If a required executable is not on PATH.
    PipelineError
        If a stage fails.
    """
    print(render_run_configuration(config))

    stages = build_pipeline_stages(config)
    context = create_context(config)

    if config.dry_run:
        logger.info("Dry run: printing commands without executing them")
    else:
        tools = required_tools(config)
        if not check_external_tools(tools):
            raise ToolNotFoundError(", ".join(missing_external_tools(tools)))
        context.workspace.create_directories()

    logger.info(f"Executing chimpipe {__version__} for {config.sample_id}")
    context = PipelineRunner().run(stages, context)
    logger.info(
        f"Chimeric junction detection for {config.sample_id} completed in "
        f"{context.get_execution_time() / 60:.2f} min"
    )
    return context
