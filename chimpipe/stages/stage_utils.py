"""
Utilities shared by stages that drive external tools.

CommandStage is the base class of every stage whose work is done by external
programs. Subclasses build Command objects; the base class stages the needed
reference files, runs the commands with the pipeline environment and, in dry
runs, prints them instead.
"""

import logging
from pathlib import Path
from typing import List, Sequence

from ..pipeline_core import PipelineContext, Stage
from ..staging import ReferenceRole
from ..utils import Command, run_command

logger = logging.getLogger(__name__)


class CommandStage(Stage):
    """Base class for stages implemented by external command pipelines."""

    #: Reference files copied to the staging directory before the commands run
    references: Sequence[ReferenceRole] = ()

    def build_commands(self, context: PipelineContext) -> List[Command]:
        """Return the commands of this stage in execution order.

        Parameters
        ----------
        context : PipelineContext
            The pipeline context

        Returns
        -------
        List[Command]
            Commands to run
        """
        return []

    def stage_references(self, context: PipelineContext) -> None:
        """Make sure every reference this stage reads is staged."""
        for role in self.references:
            context.staging.ensure_staged(role)

    def staged(self, context: PipelineContext, role: ReferenceRole) -> Path:
        """Return the staged location of a reference."""
        return context.staging.target(role)

    def run(self, context: PipelineContext, command: Command) -> str:
        """Run one command with the pipeline environment."""
        logger.debug(f"Stage '{self.name}': {command.render()}")
        return run_command(command, env=context.tool_environment())

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Stage the references and run every command in order."""
        self.stage_references(context)
        for command in self.build_commands(context):
            self.run(context, command)
        return context

    def _dry_run(self, context: PipelineContext) -> None:
        """Print the resolved commands of the stage."""
        print(f"# {self.name}: {self.description}")
        self.stage_references(context)
        for command in self.build_commands(context):
            print(command.render())


def partial(context: PipelineContext, path: Path) -> Path:
    """Return the temporary name a tool should write an output to."""
    return context.workspace.partial_path(path)
