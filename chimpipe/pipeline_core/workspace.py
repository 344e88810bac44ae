"""
Workspace - Centralized file path management for pipeline runs.

This module provides the Workspace class that manages all file paths
during a pipeline run: the output directory layout, the per-sample scratch
directory and the temporary names used to publish stage outputs atomically.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Union

logger = logging.getLogger(__name__)

PARTIAL_MARKER = ".partial"

JUNCTIONS_BASENAME = (
    "distinct_junctions_nbstaggered_nbtotalsplimappings_withmaxbegandend_samechrstr_okgxorder"
    "_dist_ss1_ss2_gnlist1_gnlist2_gnname1_gnname2_bt1_bt2"
)
JUNCTIONS_SUFFIX = "from_split_mappings_part1overA_part2overB_only_A_B_indiffgn_and_inonegn.txt"
EXON_CONNECTIONS_PREFIX = (
    "exonA_exonB_with_splitmapping_part1overA_part2overB_readlist_sm1list_sm2list"
    "_staggeredlist_totalist"
)


class Workspace:
    """Manages all file paths for a pipeline run.

    Output layout::

        <output_dir>/MappingPhase/{FirstMapping,SecondMapping}
        <output_dir>/ChimeraDetectionPhase/{ReadsSpanningSpliceJunctions,
            ChimericSpliceJunctions,PEsupport,genePairSim}
        <output_dir>/chimeric_junctions_candidates_<sample>.txt
        <output_dir>/chimeric_junctions_<sample>.txt

    Reference files are staged in <scratch_dir>/chimpipe_<sample>.

    Attributes
    ----------
    output_dir : Path
        Main output directory
    sample_id : str
        Sample identifier used to name output files
    scratch_dir : Path
        Scratch directory holding the per-sample staging directory
    """

    def __init__(self, output_dir: Path, sample_id: str, scratch_dir: Path):
        """Initialize workspace paths without touching the filesystem.

        Parameters
        ----------
        output_dir : Path
            Main output directory path
        sample_id : str
            Sample identifier
        scratch_dir : Path
            Scratch directory path
        """
        self.output_dir = Path(output_dir)
        self.sample_id = sample_id
        self.scratch_dir = Path(scratch_dir)

        self.mapping_dir = self.output_dir / "MappingPhase"
        self.first_mapping_dir = self.mapping_dir / "FirstMapping"
        self.second_mapping_dir = self.mapping_dir / "SecondMapping"
        self.detection_dir = self.output_dir / "ChimeraDetectionPhase"
        self.spliced_reads_dir = self.detection_dir / "ReadsSpanningSpliceJunctions"
        self.chimeric_junctions_dir = self.detection_dir / "ChimericSpliceJunctions"
        self.pe_support_dir = self.detection_dir / "PEsupport"
        self.similarity_dir = self.detection_dir / "genePairSim"
        self.staging_dir = self.scratch_dir / f"chimpipe_{sample_id}"

    def create_directories(self) -> None:
        """Create the output layout. The staging directory is created on first use."""
        for directory in (
            self.first_mapping_dir,
            self.second_mapping_dir,
            self.spliced_reads_dir,
            self.chimeric_junctions_dir,
            self.pe_support_dir,
            self.similarity_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Workspace initialized: output_dir={self.output_dir}")

    def _sample_path(self, directory: Path, suffix: str) -> Path:
        return directory / f"{self.sample_id}{suffix}"

    # Mapping phase
    @property
    def first_map(self) -> Path:
        return self._sample_path(self.first_mapping_dir, "_firstMap.map.gz")

    @property
    def staged_first_map(self) -> Path:
        return self.staging_dir / self.first_map.name

    @property
    def filtered_first_map(self) -> Path:
        return self._sample_path(self.first_mapping_dir, "_firstMap_filtered.map.gz")

    @property
    def first_map_bam(self) -> Path:
        return self._sample_path(self.first_mapping_dir, "_firstMap.bam")

    @property
    def filtered_bam(self) -> Path:
        return self._sample_path(self.first_mapping_dir, "_firstMap_filtered.bam")

    @property
    def library_type_file(self) -> Path:
        return self._sample_path(self.first_mapping_dir, "_library_type.txt")

    @property
    def reads_to_remap(self) -> Path:
        return self._sample_path(self.second_mapping_dir, "_reads2remap.fastq")

    @property
    def second_map(self) -> Path:
        return self._sample_path(self.second_mapping_dir, "_secondMap.map")

    def log_file(self, directory: Path, name: str) -> Path:
        """Return the path of a tool log file, named after the sample."""
        return self._sample_path(directory, f"_{name}.log")

    # Chimera detection phase
    @property
    def first_map_gff(self) -> Path:
        return self._sample_path(
            self.spliced_reads_dir, "_readsSpanningSpliceJunctions_firstMap.gff.gz"
        )

    @property
    def second_map_gff(self) -> Path:
        return self._sample_path(
            self.spliced_reads_dir, "_readsSpanningSpliceJunctions_secondMap.gff.gz"
        )

    @property
    def split_mapping_manifest(self) -> Path:
        return self.spliced_reads_dir / f"split_mapping_file_sample_{self.sample_id}.txt"

    def exon_connections(self, gff: Path) -> Path:
        """Return the exon connection file the connection script derives from a GFF."""
        stem = gff.name[: -len(".gff.gz")] if gff.name.endswith(".gff.gz") else gff.stem
        return self.chimeric_junctions_dir / f"{EXON_CONNECTIONS_PREFIX}_{stem}.txt.gz"

    @property
    def chimeric_junctions(self) -> Path:
        return self.chimeric_junctions_dir / f"{JUNCTIONS_BASENAME}_{JUNCTIONS_SUFFIX}"

    @property
    def chimeric_junctions_report(self) -> Path:
        return self.chimeric_junctions_dir / f"chimeric_junctions_report_{self.sample_id}.txt"

    @property
    def pe_gene_connections(self) -> Path:
        return self.pe_support_dir / "pairs_of_diff_gn_supported_by_pereads_nbpereads.txt"

    @property
    def junctions_with_pe(self) -> Path:
        return self.detection_dir / f"{JUNCTIONS_BASENAME}_PEinfo_{JUNCTIONS_SUFFIX}"

    def similarity_cache(self, annotation_stem: str) -> Path:
        """Return the gene pair similarity file computed for an annotation."""
        return (
            self.similarity_dir
            / f"{annotation_stem}_gene1_gene2_alphaorder_pcentsim_lgalign_trpair.txt"
        )

    @property
    def junctions_with_similarity(self) -> Path:
        return self.detection_dir / (
            f"{JUNCTIONS_BASENAME}_PEinfo_maxLgalSim_maxLgal_{JUNCTIONS_SUFFIX}"
        )

    # Final outputs
    @property
    def candidates(self) -> Path:
        return self.output_dir / f"chimeric_junctions_candidates_{self.sample_id}.txt"

    @property
    def final_junctions(self) -> Path:
        return self.output_dir / f"chimeric_junctions_{self.sample_id}.txt"

    @staticmethod
    def partial_path(path: Union[str, Path]) -> Path:
        """Return the temporary name under which an output is written.

        The marker goes before the last extension so tools that infer the
        format from the extension keep working, e.g. ``x.bam`` becomes
        ``x.partial.bam``.
        """
        path = Path(path)
        return path.with_name(f"{path.stem}{PARTIAL_MARKER}{path.suffix}")

    @staticmethod
    def is_partial(path: Union[str, Path]) -> bool:
        """Return True if a path is a temporary output name."""
        return PARTIAL_MARKER in Path(path).name

    def promote(self, path: Union[str, Path]) -> bool:
        """Atomically move the partial file of an output onto its final name.

        Parameters
        ----------
        path : str or Path
            The final output path.

        Returns
        -------
        bool
            True if a partial file was promoted.
        """
        partial = self.partial_path(path)
        if partial.exists():
            os.replace(partial, path)
            logger.debug(f"Promoted {partial} to {path}")
            return True
        return False

    def remove_partial(self, path: Union[str, Path]) -> None:
        """Remove a stale partial file left by an interrupted run."""
        partial = self.partial_path(path)
        if partial.exists():
            logger.debug(f"Removing stale partial output {partial}")
            partial.unlink()

    def list_partials(self) -> List[Path]:
        """List partial files left anywhere in the output directory."""
        if not self.output_dir.exists():
            return []
        return [p for p in self.output_dir.rglob("*") if p.is_file() and self.is_partial(p)]

    def cleanup_scratch(self) -> None:
        """Remove the per-sample staging directory and leftover partial outputs."""
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir)
            logger.debug(f"Cleaned up staging directory: {self.staging_dir}")
        for partial in self.list_partials():
            partial.unlink()
            logger.debug(f"Removed leftover partial output: {partial}")

    def __repr__(self) -> str:
        """Return string representation of the workspace."""
        return f"Workspace(output_dir='{self.output_dir}', sample_id='{self.sample_id}')"
