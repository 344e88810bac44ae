# File: chimpipe/library_type.py
# Location: chimpipe/chimpipe/library_type.py

"""
Sequencing library type inference.

The strand specificity of a paired-end library is inferred from the
orientation of a random sample of mapped read pairs relative to the
annotated transcripts. The external inference script reports three
percentages:

- fraction1: pairs explained by 1++,1--,2+-,2-+ (mate 1 sense)
- fraction2: pairs explained by 1+-,1-+,2++,2-- (mate 2 sense)
- other: pairs explained by any other combination

The percentages are truncated to integers and classified with fixed cutoffs.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .pipeline_core.error_handling import ClassificationError

logger = logging.getLogger("chimpipe")

STRANDED_CUTOFF = 70
UNSTRANDED_LOWER = 40
UNSTRANDED_UPPER = 60


class LibraryType(Enum):
    """Sequencing library protocols."""

    MATE1_SENSE = "MATE1_SENSE"
    MATE2_SENSE = "MATE2_SENSE"
    UNSTRANDED = "UNSTRANDED"

    @property
    def stranded(self) -> int:
        """Return 1 for strand-aware protocols and 0 otherwise."""
        return 0 if self is LibraryType.UNSTRANDED else 1

    @classmethod
    def from_string(cls, value: str) -> "LibraryType":
        """Return the member whose value matches exactly, raising ValueError otherwise."""
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(
            f"'{value}' is not a sequencing library type "
            f"[{' | '.join(m.value for m in cls)}]"
        )


@dataclass(frozen=True)
class OrientationStatistics:
    """Percentages of sampled read pairs consistent with each orientation."""

    fraction1: float
    fraction2: float
    other: float

    @classmethod
    def parse(cls, text: str) -> "OrientationStatistics":
        """Parse the whitespace-separated output of the inference script.

        Raises
        ------
        ClassificationError
            If the output does not hold three numbers.
        """
        fields = text.split()
        if len(fields) < 3:
            raise ClassificationError(f"Unexpected library inference output: '{text.strip()}'")
        try:
            return cls(float(fields[0]), float(fields[1]), float(fields[2]))
        except ValueError:
            raise ClassificationError(f"Unexpected library inference output: '{text.strip()}'")

    def truncated(self):
        """Return the three fractions with their decimals discarded."""
        return int(self.fraction1), int(self.fraction2), int(self.other)


def classify_library_type(statistics: OrientationStatistics) -> LibraryType:
    """
    Classify the library protocol from orientation statistics.

    Parameters
    ----------
    statistics : OrientationStatistics
        Orientation fractions of the sampled read pairs.

    Returns
    -------
    LibraryType
        The inferred protocol.

    Raises
    ------
    ClassificationError
        If the fractions match none of the protocols.
    """
    fraction1, fraction2, _ = statistics.truncated()

    if fraction1 >= STRANDED_CUTOFF:
        return LibraryType.MATE1_SENSE
    if fraction2 >= STRANDED_CUTOFF:
        return LibraryType.MATE2_SENSE
    if (
        UNSTRANDED_LOWER <= fraction1 <= UNSTRANDED_UPPER
        and UNSTRANDED_LOWER <= fraction2 <= UNSTRANDED_UPPER
    ):
        return LibraryType.UNSTRANDED

    raise ClassificationError(
        f"Unable to determine the library type (fraction1={statistics.fraction1}, "
        f"fraction2={statistics.fraction2}, other={statistics.other})",
        statistics=statistics,
    )
