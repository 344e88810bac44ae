"""
PipelineRunner - Executes stages strictly in list order.

This module provides the PipelineRunner class that validates the stage order,
runs each stage once, stops at the first failure and logs an execution summary.
"""

import logging
import time
from typing import Dict, List

from .context import PipelineContext, StageStatus
from .stage import Stage

logger = logging.getLogger(__name__)


class PipelineRunner:
    """Executes stages sequentially, in the order given.

    The runner handles:
    - Validation that every hard dependency appears earlier in the list
    - Sequential execution with a single thread of control
    - Error propagation: the first failure aborts the run and later stages
      stay pending
    - Execution summary logging
    """

    def __init__(self):
        """Initialize the pipeline runner."""
        self._execution_times: Dict[str, float] = {}
        self._subtask_times: Dict[str, Dict[str, float]] = {}

    def run(self, stages: List[Stage], context: PipelineContext) -> PipelineContext:
        """Execute all stages in list order.

        Parameters
        ----------
        stages : List[Stage]
            List of stages to execute
        context : PipelineContext
            Initial pipeline context

        Returns
        -------
        PipelineContext
            Final context after all stages complete

        Raises
        ------
        ValueError
            If stage names are duplicated or a dependency is out of order
        PipelineError
            If any stage fails
        """
        start_time = time.time()
        logger.info(f"Starting pipeline execution with {len(stages)} stages")

        self.validate_order(stages)
        for stage in stages:
            context.set_status(stage.name, StageStatus.PENDING)

        try:
            for stage in stages:
                try:
                    context = stage(context)
                finally:
                    if stage.name in context.stage_times:
                        self._execution_times[stage.name] = context.stage_times[stage.name]
                    if stage.subtask_times:
                        self._subtask_times[stage.name] = stage.subtask_times
        finally:
            self._log_execution_summary(stages, context)

        total_time = time.time() - start_time
        logger.info(f"Pipeline execution completed in {total_time:.1f}s")
        return context

    @staticmethod
    def validate_order(stages: List[Stage]) -> None:
        """Check names are unique and each dependency precedes its dependent.

        Raises
        ------
        ValueError
            If the stage list is not a valid execution order
        """
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate stage names detected")

        seen = set()
        for stage in stages:
            for dep in sorted(stage.dependencies):
                if dep not in names:
                    raise ValueError(f"Stage '{stage.name}' depends on unknown stage '{dep}'")
                if dep not in seen:
                    raise ValueError(f"Stage '{stage.name}' must run after '{dep}'")
            # Soft dependencies only constrain the order when they are present
            for dep in sorted(stage.soft_dependencies):
                if dep in names and dep not in seen:
                    raise ValueError(f"Stage '{stage.name}' must run after '{dep}'")
            seen.add(stage.name)

    def _log_execution_summary(self, stages: List[Stage], context: PipelineContext) -> None:
        """Log status and elapsed time of every stage."""
        logger.info("=" * 60)
        logger.info("Stage Execution Summary")
        logger.info("=" * 60)

        total_time = sum(self._execution_times.values())
        for stage in stages:
            status = context.status_of(stage.name).value
            elapsed = self._execution_times.get(stage.name)
            if elapsed is None:
                logger.info(f"{stage.name:30s} {status:10s}")
                continue
            percentage = (elapsed / total_time) * 100 if total_time > 0 else 0
            logger.info(f"{stage.name:30s} {status:10s} {elapsed:6.1f}s ({percentage:4.1f}%)")
            for subtask_name, subtask_elapsed in self._subtask_times.get(stage.name, {}).items():
                logger.info(f"  └─ {subtask_name:38s} {subtask_elapsed:6.1f}s")

        logger.info("-" * 60)
        logger.info(f"{'Total stage time:':41s} {total_time:6.1f}s")
        logger.info("=" * 60)

    def dry_run(self, stages: List[Stage]) -> List[str]:
        """Return the execution order without running stages.

        Parameters
        ----------
        stages : List[Stage]
            Stages to analyze

        Returns
        -------
        List[str]
            Stage names in execution order
        """
        self.validate_order(stages)
        return [stage.name for stage in stages]
