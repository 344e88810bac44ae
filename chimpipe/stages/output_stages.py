"""
Output stages for the final chimeric junction files.

This module contains stages that:
- Write the matrix of chimeric junction candidates with a header
- Apply the filtering module to produce the final chimeric junctions
- Remove the per-sample scratch directory
"""

import logging
from pathlib import Path
from typing import List, Set

from ..filters import (
    SIMILARITY_COLUMNS,
    filter_junctions,
    read_candidate_matrix,
    read_junction_matrix,
    write_junction_matrix,
)
from ..pipeline_core import PipelineContext, Stage
from .stage_utils import partial

logger = logging.getLogger(__name__)


class CandidateMatrixStage(Stage):
    """Write the chimeric junction candidates with a header row."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "candidate_matrix"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Write the chimeric junction candidates matrix"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"merge_gene_similarity"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the candidates matrix."""
        return [context.workspace.candidates]

    def _process(self, context: PipelineContext) -> PipelineContext:
        workspace = context.workspace
        candidates = read_junction_matrix(workspace.junctions_with_similarity, SIMILARITY_COLUMNS)
        write_junction_matrix(candidates, partial(context, workspace.candidates), header=True)
        logger.info(f"{len(candidates)} chimeric junction candidates for {context.config.sample_id}")
        return context


class FinalFilteringStage(Stage):
    """Filter the candidates into the final set of chimeric junctions."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "final_filtering"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Filter chimeric junction candidates"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"candidate_matrix"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the final chimeric junctions file."""
        return [context.workspace.final_junctions]

    def _process(self, context: PipelineContext) -> PipelineContext:
        workspace = context.workspace
        candidates = read_candidate_matrix(workspace.candidates)
        accepted = filter_junctions(candidates, context.config.filter_configuration)
        write_junction_matrix(accepted, partial(context, workspace.final_junctions), header=True)
        return context

    def _dry_run(self, context: PipelineContext) -> None:
        print(
            f"# {self.name}: keep candidates of {context.workspace.candidates} matching "
            f"'{context.config.filter_configuration}' -> {context.workspace.final_junctions}"
        )


class CleanupStage(Stage):
    """Remove the per-sample scratch directory and leftover partial outputs.

    The stage counts as done when the scratch directory is gone, so a
    completed run evaluates it as skipped.
    """

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "cleanup"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Remove intermediate scratch files"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"final_filtering"}

    def is_satisfied(self, context: PipelineContext) -> bool:
        """Return True when nothing is left to clean."""
        workspace = context.workspace
        return not workspace.staging_dir.exists() and not workspace.list_partials()

    def _process(self, context: PipelineContext) -> PipelineContext:
        context.workspace.cleanup_scratch()
        return context

    def _dry_run(self, context: PipelineContext) -> None:
        print(f"# {self.name}: {self.description}")
        print(f"rm -rf {context.workspace.staging_dir}")
