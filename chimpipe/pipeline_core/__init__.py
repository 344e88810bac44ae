"""
Pipeline infrastructure for chimpipe.

This package provides the core abstractions of the staged pipeline:
- PipelineContext: Container for all pipeline state
- Stage: Abstract base class for all pipeline steps
- Workspace: Centralized file path management
- PipelineRunner: Runs stages in order with output-based checkpointing
"""

from .context import PipelineContext, StageStatus
from .runner import PipelineRunner
from .stage import Stage
from .workspace import Workspace

__all__ = [
    "PipelineContext",
    "Stage",
    "StageStatus",
    "Workspace",
    "PipelineRunner",
]
