"""Test mocks for chimpipe tests."""

from .external_tools import (
    FIRST_SAM_RECORD,
    JUNCTION_LINES,
    MockBedTools,
    MockGemTools,
    MockHelperScripts,
    MockSamtools,
    MockToolchain,
)

__all__ = [
    "FIRST_SAM_RECORD",
    "JUNCTION_LINES",
    "MockBedTools",
    "MockGemTools",
    "MockHelperScripts",
    "MockSamtools",
    "MockToolchain",
]
