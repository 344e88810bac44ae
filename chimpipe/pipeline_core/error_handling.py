"""
Error handling utilities for the chimera detection pipeline.

This module provides:
- Custom exception classes for the pipeline error taxonomy
- Input path validation helpers used by the configuration validator

There is no retry or recovery machinery: every error is fatal for the run,
and re-invoking the pipeline resumes from the first stage whose outputs are
missing.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize pipeline error.

        Parameters
        ----------
        message : str
            Error message
        stage : str, optional
            Stage where error occurred
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.stage = stage
        self.details = details or {}


class ConfigurationError(PipelineError):
    """Raised when an option is missing or malformed."""

    def __init__(self, option: str, message: str):
        """Initialize configuration error."""
        super().__init__(f"Option '{option}': {message}", details={"option": option})
        self.option = option


class MissingInputError(PipelineError):
    """Raised when a mandatory input file does not exist or is empty."""

    def __init__(self, option: str, path: Union[str, Path], reason: str = "does not exist"):
        """Initialize missing input error."""
        super().__init__(
            f"Option '{option}': input '{path}' {reason}",
            details={"option": option, "path": str(path)},
        )
        self.option = option
        self.path = str(path)


class ToolNotFoundError(PipelineError):
    """Raised when a required external tool is not found."""

    def __init__(self, tool: str, stage: Optional[str] = None):
        """Initialize tool not found error."""
        message = f"Required tool '{tool}' not found"
        super().__init__(message, stage, {"tool": tool})


class StagingError(PipelineError):
    """Raised when a reference file cannot be copied to the scratch directory."""


class ClassificationError(PipelineError):
    """Raised when the sequencing library type cannot be inferred."""

    def __init__(self, message: str, statistics=None, stage: Optional[str] = None):
        """Initialize classification error."""
        super().__init__(
            f"{message}. Ask your data provider and use the option -l|--seq-library",
            stage,
            {"statistics": statistics},
        )
        self.statistics = statistics


class StageExecutionError(PipelineError):
    """Raised when a stage fails to execute properly."""

    def __init__(self, stage_name: str, original_error: Union[Exception, str]):
        """Initialize stage execution error."""
        message = f"Stage '{stage_name}' failed: {str(original_error)}"
        details = {"original_error": str(original_error)}
        if isinstance(original_error, Exception):
            details["error_type"] = type(original_error).__name__
        super().__init__(message, stage_name, details)
        self.original_error = original_error


def is_nonempty_path(path: Union[str, Path]) -> bool:
    """Return True if path is a non-empty file or a non-empty directory."""
    path = Path(path)
    if path.is_dir():
        return any(path.iterdir())
    return path.is_file() and os.path.getsize(path) > 0


def validate_input_path(path: Union[str, Path], option: str) -> Path:
    """Validate that a mandatory input exists and is non-empty.

    Parameters
    ----------
    path : str or Path
        Path to validate
    option : str
        Option name used for error reporting

    Returns
    -------
    Path
        Validated path object

    Raises
    ------
    MissingInputError
        If the path does not exist or is empty
    """
    path = Path(path)

    if not path.exists():
        raise MissingInputError(option, path)

    if not is_nonempty_path(path):
        raise MissingInputError(option, path, "is empty")

    return path


def validate_existing_directory(path: Union[str, Path], option: str) -> Path:
    """Validate that a directory option points to an existing directory.

    Parameters
    ----------
    path : str or Path
        Directory path
    option : str
        Option name used for error reporting

    Returns
    -------
    Path
        Validated directory path

    Raises
    ------
    ConfigurationError
        If the directory does not exist or is not a directory
    """
    path = Path(path)

    if not path.exists():
        raise ConfigurationError(option, f"directory '{path}' does not exist")
    if not path.is_dir():
        raise ConfigurationError(option, f"'{path}' is not a directory")

    return path
