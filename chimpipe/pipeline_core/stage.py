"""
Stage - Abstract base class for all pipeline stages.

This module provides the unified Stage abstraction that all pipeline steps
inherit from. A stage declares the files it produces; a stage whose declared
outputs all exist and are non-empty is skipped, which is what makes a failed
run resumable by simply re-invoking it.
"""

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Set

from .context import PipelineContext, StageStatus
from .error_handling import (
    ClassificationError,
    StageExecutionError,
    is_nonempty_path,
)

logger = logging.getLogger(__name__)


class Stage(ABC):
    """Abstract base class for all pipeline stages.

    Each stage declares its name, its dependencies and its output files, and
    implements _process to perform its work.

    The stage execution is handled by __call__, which validates dependencies,
    applies the skip rule, publishes outputs atomically, verifies them,
    handles errors and tracks timing.
    """

    def __init__(self):
        """Initialize the stage with subtask tracking."""
        self._subtask_times: Dict[str, float] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for the stage.

        Returns
        -------
        str
            The stage name used for dependency tracking and logging
        """
        pass

    @property
    def dependencies(self) -> Set[str]:
        """Stage names that must complete before this stage.

        Returns
        -------
        Set[str]
            Set of stage names this stage depends on
        """
        return set()

    @property
    def soft_dependencies(self) -> Set[str]:
        """Stage names that should run before this stage if present.

        Returns
        -------
        Set[str]
            Set of stage names this stage prefers to run after
        """
        return set()

    @property
    def description(self) -> str:
        """Human-readable description for logging.

        Returns
        -------
        str
            Description of what this stage does
        """
        return f"Stage: {self.name}"

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the files this stage produces.

        Override in subclasses. A stage without declared outputs always runs.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        List[Path]
            List of output file paths
        """
        return []

    def is_satisfied(self, context: PipelineContext) -> bool:
        """Return True when every declared output exists and is non-empty."""
        outputs = self.get_output_files(context)
        return bool(outputs) and all(is_nonempty_path(path) for path in outputs)

    def __call__(self, context: PipelineContext) -> PipelineContext:
        """Execute the stage with pre/post processing.

        This method handles:
        - Dependency validation
        - Dry-run printing
        - Skipping stages whose outputs exist
        - Removing stale partial outputs and promoting new ones
        - Output verification, error wrapping and timing

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        PipelineContext
            Updated context after stage execution

        Raises
        ------
        RuntimeError
            If dependencies are not satisfied
        StageExecutionError
            If the stage fails or leaves a declared output missing or empty
        ClassificationError
            If the library type cannot be inferred
        """
        missing_deps = [dep for dep in sorted(self.dependencies) if not context.is_complete(dep)]
        if missing_deps:
            raise RuntimeError(
                f"Stage '{self.name}' requires these stages to complete first: "
                f"{', '.join(missing_deps)}"
            )

        if context.config.dry_run:
            self._dry_run(context)
            context.mark_complete(self.name)
            return context

        start_time = time.time()
        try:
            if self.is_satisfied(context):
                logger.info(f"Stage '{self.name}' outputs already exist, skipping")
                context.mark_complete(self.name, skipped=True)
                return self._handle_checkpoint_skip(context)

            logger.info(f"Executing {self.description}")
            outputs = self.get_output_files(context)
            for path in outputs:
                context.workspace.remove_partial(path)

            updated_context = self._process(context)

            for path in outputs:
                updated_context.workspace.promote(path)
            missing = [str(path) for path in outputs if not is_nonempty_path(path)]
            if missing:
                raise StageExecutionError(
                    self.name, f"missing or empty output(s): {', '.join(missing)}"
                )
        except StageExecutionError:
            self._fail(context, start_time)
            raise
        except ClassificationError as e:
            self._fail(context, start_time)
            if e.stage is None:
                e.stage = self.name
            raise
        except Exception as e:
            self._fail(context, start_time)
            raise StageExecutionError(self.name, e) from e

        elapsed = time.time() - start_time
        updated_context.stage_times[self.name] = elapsed
        updated_context.mark_complete(self.name)
        logger.info(f"Stage '{self.name}' completed successfully in {elapsed:.1f}s")
        return updated_context

    def _fail(self, context: PipelineContext, start_time: float) -> None:
        elapsed = time.time() - start_time
        context.stage_times[self.name] = elapsed
        context.set_status(self.name, StageStatus.FAILED)
        logger.error(f"Stage '{self.name}' failed after {elapsed:.1f}s")

    @abstractmethod
    def _process(self, context: PipelineContext) -> PipelineContext:
        """Core processing logic - must be implemented by subclasses.

        Outputs should be written to their partial names (see
        Workspace.partial_path) where the producing tool allows it.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        PipelineContext
            Updated context after processing
        """
        pass

    def _dry_run(self, context: PipelineContext) -> None:
        """Print what the stage would do. Override to print resolved commands."""
        print(f"# {self.name}: {self.description}")

    def _handle_checkpoint_skip(self, context: PipelineContext) -> PipelineContext:
        """Restore context state produced by this stage when it is skipped.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        PipelineContext
            The context, updated with any state the stage would have set
        """
        return context

    def __repr__(self) -> str:
        """Return string representation of the stage."""
        deps = f", depends_on={self.dependencies}" if self.dependencies else ""
        return f"{self.__class__.__name__}(name='{self.name}'{deps})"

    def _start_subtask(self, subtask_name: str) -> float:
        """Start timing a subtask."""
        start_time = time.time()
        logger.debug(f"Stage '{self.name}': Starting subtask '{subtask_name}'")
        return start_time

    def _end_subtask(self, subtask_name: str, start_time: float) -> None:
        """End timing a subtask and record duration."""
        elapsed = time.time() - start_time
        self._subtask_times[subtask_name] = elapsed
        logger.debug(f"Stage '{self.name}': Completed subtask '{subtask_name}' in {elapsed:.1f}s")

    @property
    def subtask_times(self) -> Dict[str, float]:
        """Get recorded subtask durations.

        Returns
        -------
        Dict[str, float]
            Dictionary of subtask names to durations in seconds
        """
        return self._subtask_times.copy()
