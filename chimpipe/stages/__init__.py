"""
Pipeline stages for chimpipe.

This package contains all stage implementations organized by phase:
- mapping_stages: First mapping, unmapped read remapping, library inference
- detection_stages: Spliced read extraction, junction discovery and annotation
- output_stages: Candidate matrix, final filtering and cleanup
"""

from .detection_stages import (
    ChimericJunctionsStage,
    ExonConnectionsStage,
    GeneSimilarityStage,
    PairedEndMergeStage,
    PairedEndSupportStage,
    SimilarityMergeStage,
    SplicedReadsStage,
)
from .mapping_stages import (
    AlignReadsStage,
    ExtractUnmappedReadsStage,
    LibraryTypeInferenceStage,
    RemapUnmappedReadsStage,
    UniqueMappingFilterStage,
)
from .output_stages import CandidateMatrixStage, CleanupStage, FinalFilteringStage

__all__ = [
    # Mapping stages
    "AlignReadsStage",
    "ExtractUnmappedReadsStage",
    "RemapUnmappedReadsStage",
    "LibraryTypeInferenceStage",
    "UniqueMappingFilterStage",
    # Detection stages
    "SplicedReadsStage",
    "ExonConnectionsStage",
    "ChimericJunctionsStage",
    "PairedEndSupportStage",
    "PairedEndMergeStage",
    "GeneSimilarityStage",
    "SimilarityMergeStage",
    # Output stages
    "CandidateMatrixStage",
    "FinalFilteringStage",
    "CleanupStage",
]
