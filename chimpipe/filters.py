# File: chimpipe/filters.py
# Location: chimpipe/chimpipe/filters.py

"""
Chimeric junction matrix transforms and the final filtering module.

This module provides functions to:
- Parse and encode the filtering module configuration
- Read and write chimeric junction matrices
- Add paired-end support and gene pair similarity columns
- Filter junction candidates into the final set of chimeric junctions
"""

import logging
import os
import re
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import pandas as pd

logger = logging.getLogger("chimpipe")

JUNCTION_COLUMNS = [
    "juncId",
    "nbstag",
    "nbtotal",
    "maxbeg",
    "maxEnd",
    "samechr",
    "samestr",
    "dist",
    "ss1",
    "ss2",
    "gnlist1",
    "gnlist2",
    "gnname1",
    "gnname2",
    "bt1",
    "bt2",
]
PE_COLUMNS = JUNCTION_COLUMNS + ["PEsupport"]
SIMILARITY_COLUMNS = PE_COLUMNS + ["maxSim", "maxLgal"]

MISSING_VALUE = "na"

FILTER_CONFIGURATION_PATTERN = re.compile(r"([0-9]+,[0-9]+,[0-9]{0,3},[0-9]+;){1,2}")


class FilterThreshold(NamedTuple):
    """One alternative of the filtering module.

    A junction passes when it has at least min_staggered staggered split
    reads and min_pe_support supporting read pairs, and the connected genes
    are not highly similar. Genes are highly similar when their longest
    alignment is over max_similarity_length bases and more than
    max_similarity percent identical. With a max_similarity of None, any
    alignment over max_similarity_length bases counts as highly similar.
    """

    min_staggered: int
    min_pe_support: int
    max_similarity: Optional[int]
    max_similarity_length: int

    def encode(self) -> str:
        """Return the textual form of this threshold, ';' terminated."""
        similarity = "" if self.max_similarity is None else str(self.max_similarity)
        return (
            f"{self.min_staggered},{self.min_pe_support},{similarity},"
            f"{self.max_similarity_length};"
        )


class FilterConfiguration(NamedTuple):
    """One or two thresholds combined with OR."""

    thresholds: Tuple[FilterThreshold, ...]

    @classmethod
    def parse(cls, text: str) -> "FilterConfiguration":
        """
        Parse a filtering module configuration such as '5,0,80,30;1,1,80,30;'.

        Raises
        ------
        ValueError
            If the text does not match the configuration grammar.
        """
        if not isinstance(text, str) or not FILTER_CONFIGURATION_PATTERN.fullmatch(text):
            raise ValueError(
                f"'{text}' is not a filter configuration; expected one or two "
                "'<int>,<int>,<0-3 digits>,<int>;' blocks"
            )
        thresholds = []
        for block in text.rstrip(";").split(";"):
            staggered, pe_support, similarity, length = block.split(",")
            thresholds.append(
                FilterThreshold(
                    int(staggered),
                    int(pe_support),
                    int(similarity) if similarity else None,
                    int(length),
                )
            )
        return cls(tuple(thresholds))

    def encode(self) -> str:
        """Return the textual form of the configuration."""
        return "".join(threshold.encode() for threshold in self.thresholds)

    def __str__(self) -> str:
        return self.encode()


def read_junction_matrix(path: str, columns: List[str]) -> pd.DataFrame:
    """
    Read a headerless, whitespace-separated junction matrix.

    All values are kept as strings so that rewritten files preserve the
    original text of every field.

    Parameters
    ----------
    path : str
        Path to the matrix.
    columns : List[str]
        Column names to assign, in file order.

    Returns
    -------
    pd.DataFrame
        The junction matrix, empty if the file is empty.
    """
    if os.path.getsize(path) == 0:
        return pd.DataFrame(columns=columns, dtype=str)

    df = pd.read_csv(
        path,
        sep=r"\s+",
        header=None,
        names=columns,
        dtype=str,
        keep_default_na=False,
        engine="python",
    )
    logger.debug(f"Read {len(df)} junctions from {path}")
    return df


def read_candidate_matrix(path: str) -> pd.DataFrame:
    """Read a tab-separated junction matrix whose first row is a header."""
    return pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)


def write_junction_matrix(df: pd.DataFrame, path: str, header: bool = False) -> str:
    """Write a junction matrix as tab-separated text and return the path."""
    df.to_csv(path, sep="\t", index=False, header=header, na_rep=MISSING_VALUE)
    return path


def split_gene_list(value: str) -> List[str]:
    """Split a comma-separated gene list, dropping empty and missing entries."""
    if not isinstance(value, str):
        return []
    return [gene for gene in value.split(",") if gene and gene != "."]


def _gene_pairs(gnlist1: str, gnlist2: str) -> Iterable[Tuple[str, str]]:
    for gene1 in split_gene_list(gnlist1):
        for gene2 in split_gene_list(gnlist2):
            if gene1 != gene2:
                yield tuple(sorted((gene1, gene2)))


def read_pe_support(path: str) -> Dict[Tuple[str, str], int]:
    """
    Read gene to gene connections supported by paired-end reads.

    Each line holds two gene ids and the number of read pairs connecting
    them. Pairs are stored in alphabetical order; if both orientations are
    listed the larger count is kept.
    """
    support: Dict[Tuple[str, str], int] = {}
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            fields = line.split()
            if len(fields) < 3:
                continue
            key = tuple(sorted((fields[0], fields[1])))
            try:
                count = int(fields[2])
            except ValueError:
                logger.warning(f"Ignoring malformed paired-end support line: {line.strip()}")
                continue
            support[key] = max(count, support.get(key, 0))
    logger.debug(f"Read paired-end support for {len(support)} gene pairs from {path}")
    return support


def add_pe_support(junctions: pd.DataFrame, support: Dict[Tuple[str, str], int]) -> pd.DataFrame:
    """
    Add the PEsupport column: the largest number of supporting read pairs
    between any gene of gnlist1 and any gene of gnlist2 (0 when none).
    """
    df = junctions.copy()
    df["PEsupport"] = [
        str(max((support.get(pair, 0) for pair in _gene_pairs(g1, g2)), default=0))
        for g1, g2 in zip(df["gnlist1"], df["gnlist2"])
    ]
    return df


def read_gene_similarity(path: str) -> Dict[Tuple[str, str], Tuple[float, int]]:
    """
    Read gene pair similarities.

    Each line holds two gene ids, the percent similarity and the length of
    the aligned region, optionally followed by the transcript pair. For a
    gene pair listed several times the record with the longest alignment is
    kept, together with its own similarity percent.
    """
    similarity: Dict[Tuple[str, str], Tuple[float, int]] = {}
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            fields = line.split()
            if len(fields) < 4:
                continue
            key = tuple(sorted((fields[0], fields[1])))
            try:
                percent = float(fields[2])
                length = int(float(fields[3]))
            except ValueError:
                logger.warning(f"Ignoring malformed gene similarity line: {line.strip()}")
                continue
            previous = similarity.get(key)
            record = (percent, length)
            similarity[key] = record if previous is None else max(previous, record, key=_by_length)
    logger.debug(f"Read similarity for {len(similarity)} gene pairs from {path}")
    return similarity


def _by_length(record: Tuple[float, int]) -> Tuple[int, float]:
    # Longest alignment first, higher percent on equal length
    return record[1], record[0]


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def add_gene_similarity(
    junctions: pd.DataFrame, similarity: Dict[Tuple[str, str], Tuple[float, int]]
) -> pd.DataFrame:
    """
    Add maxLgal, the longest alignment between any gene of gnlist1 and any
    gene of gnlist2, and maxSim, the similarity percent of that alignment.
    Both are 'na' when no pair has similarity information.
    """
    df = junctions.copy()
    max_sim = []
    max_lgal = []
    for gnlist1, gnlist2 in zip(df["gnlist1"], df["gnlist2"]):
        values = [similarity[pair] for pair in _gene_pairs(gnlist1, gnlist2) if pair in similarity]
        if values:
            percent, length = max(values, key=_by_length)
            max_sim.append(_format_number(percent))
            max_lgal.append(str(length))
        else:
            max_sim.append(MISSING_VALUE)
            max_lgal.append(MISSING_VALUE)
    df["maxSim"] = max_sim
    df["maxLgal"] = max_lgal
    return df


def filter_junctions(df: pd.DataFrame, configuration: FilterConfiguration) -> pd.DataFrame:
    """
    Keep the junctions that satisfy at least one filter threshold.

    Parameters
    ----------
    df : pd.DataFrame
        Junction candidates with nbstag and PEsupport columns, and optionally
        maxSim and maxLgal.
    configuration : FilterConfiguration
        Thresholds combined with OR.

    Returns
    -------
    pd.DataFrame
        The accepted junctions, in their original order.
    """
    if df.empty:
        return df.copy()

    staggered = pd.to_numeric(df["nbstag"], errors="coerce").fillna(0)
    pe_support = pd.to_numeric(df["PEsupport"], errors="coerce").fillna(0)
    if "maxSim" in df.columns:
        max_sim = pd.to_numeric(df["maxSim"], errors="coerce")
        max_lgal = pd.to_numeric(df["maxLgal"], errors="coerce")
    else:
        max_sim = pd.Series(float("nan"), index=df.index)
        max_lgal = pd.Series(float("nan"), index=df.index)

    keep = pd.Series(False, index=df.index)
    for threshold in configuration.thresholds:
        passes = (staggered >= threshold.min_staggered) & (
            pe_support >= threshold.min_pe_support
        )
        # Highly similar genes: above the percent cap over a long alignment
        short_alignment = max_lgal.isna() | (max_lgal <= threshold.max_similarity_length)
        if threshold.max_similarity is None:
            passes &= short_alignment
        else:
            passes &= short_alignment | max_sim.isna() | (max_sim <= threshold.max_similarity)
        keep |= passes

    filtered = df[keep]
    logger.info(f"Filtering module retained {len(filtered)}/{len(df)} chimeric junctions")
    return filtered
