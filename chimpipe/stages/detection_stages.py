"""
Chimera detection phase stages.

This module contains the stages that turn alignments into annotated
chimeric junction candidates:
- Extraction of reads spanning splice junctions from both mappings
- Exon to exon connections and chimeric junction discovery
- Gene to gene connections supported by paired-end reads
- Gene pair sequence similarity
- Merging of paired-end support and similarity into the junction matrix
"""

import logging
import os
from pathlib import Path
from typing import List, Set, Tuple

from ..filters import (
    JUNCTION_COLUMNS,
    PE_COLUMNS,
    add_gene_similarity,
    add_pe_support,
    read_gene_similarity,
    read_junction_matrix,
    read_pe_support,
    write_junction_matrix,
)
from ..pipeline_core import PipelineContext, Stage
from ..pipeline_core.error_handling import is_nonempty_path
from ..utils import Command
from .stage_utils import CommandStage, partial

logger = logging.getLogger(__name__)


class SplicedReadsStage(CommandStage):
    """Write GFF files with the reads spanning splice junctions in both mappings.

    Each of the two GFF files is produced only if it does not exist yet.
    """

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "extract_spliced_reads"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Extract reads spanning splice junctions from both mappings"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"filter_unique_mappings", "remap_unmapped_reads"}

    @property
    def soft_dependencies(self) -> Set[str]:
        """Return the set of stage names this stage prefers to run after."""
        return {"infer_library_type"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the first and second mapping GFF files."""
        return [context.workspace.first_map_gff, context.workspace.second_map_gff]

    def first_map_command(self, context: PipelineContext) -> Command:
        config = context.config
        workspace = context.workspace
        awk = config.tool("awk")
        return Command.pipe(
            [config.tool("bedtools"), "bamtobed", "-i", workspace.filtered_bam, "-bed12"],
            [awk, "$10==2"],
            [awk, "-v", "rev=1", "-f", config.script("bed_to_bedpe")],
            [
                awk,
                "-v",
                f"readDirectionality={context.read_directionality}",
                "-f",
                config.script("bedpe_correct_strand"),
            ],
            [awk, "-f", config.script("bedpe_to_gff")],
            [awk, "-f", config.script("gff_to_gff")],
            [config.tool("gzip")],
            stdout=partial(context, workspace.first_map_gff),
        )

    def second_map_command(self, context: PipelineContext) -> Command:
        config = context.config
        workspace = context.workspace
        awk = config.tool("awk")
        return Command.pipe(
            [
                awk,
                "-v",
                f"readDirectionality={context.read_directionality}",
                "-f",
                config.script("gem_correct_strand"),
                workspace.second_map,
            ],
            [awk, "-v", "rev=0", "-f", config.script("gem_to_gff")],
            [awk, "-f", config.script("gff_to_gff")],
            [config.tool("gzip")],
            stdout=partial(context, workspace.second_map_gff),
        )

    def sub_steps(self, context: PipelineContext) -> List[Tuple[Path, Command]]:
        return [
            (context.workspace.first_map_gff, self.first_map_command(context)),
            (context.workspace.second_map_gff, self.second_map_command(context)),
        ]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        return [command for _, command in self.sub_steps(context)]

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Produce each GFF file that is missing."""
        for target, command in self.sub_steps(context):
            if is_nonempty_path(target):
                logger.info(f"GFF file {target} already exists, reusing it")
                continue
            self.run(context, command)
            context.workspace.promote(target)
        return context


class ExonConnectionsStage(CommandStage):
    """Find exon to exon connections from the split-mapped reads."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "find_exon_connections"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Find exon to exon connections from split-mapped reads"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"extract_spliced_reads"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the exon connection files of both mappings."""
        workspace = context.workspace
        return [
            workspace.exon_connections(workspace.first_map_gff),
            workspace.exon_connections(workspace.second_map_gff),
        ]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        return [
            Command.pipe(
                [
                    config.tool("bash"),
                    config.script("exon_connections"),
                    workspace.split_mapping_manifest,
                    config.annotation,
                    workspace.chimeric_junctions_dir,
                    context.stranded_flag,
                ],
                log=workspace.chimeric_junctions_dir
                / f"find_exon_to_exon_connections_from_split-mapped_reads_{config.sample_id}.err",
            )
        ]

    def write_manifest(self, context: PipelineContext) -> Path:
        """List both GFF files, one per line, for the connection scripts."""
        workspace = context.workspace
        manifest = workspace.split_mapping_manifest
        temporary = partial(context, manifest)
        temporary.write_text(
            f"{workspace.first_map_gff}\n{workspace.second_map_gff}\n", encoding="utf-8"
        )
        os.replace(temporary, manifest)
        return manifest

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Write the split-mapping manifest and run the connection script."""
        self.write_manifest(context)
        return super()._process(context)

    def _dry_run(self, context: PipelineContext) -> None:
        """Print the manifest contents and the connection command."""
        print(f"# {self.name}: {self.description}")
        print(f"# {context.workspace.split_mapping_manifest} lists:")
        print(f"#   {context.workspace.first_map_gff}")
        print(f"#   {context.workspace.second_map_gff}")
        for command in self.build_commands(context):
            print(command.render())


class ChimericJunctionsStage(CommandStage):
    """Find chimeric junctions from the exon to exon connections."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "find_chimeric_junctions"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Find chimeric junctions from exon to exon connections"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"find_exon_connections"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the chimeric junction matrix."""
        return [context.workspace.chimeric_junctions]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        return [
            Command.pipe(
                [
                    config.tool("bash"),
                    config.script("chimeric_junctions"),
                    workspace.split_mapping_manifest,
                    config.genome_index,
                    config.annotation,
                    workspace.chimeric_junctions_dir,
                    context.stranded_flag,
                    config.first_pass.splice_consensus,
                ],
                stdout=workspace.chimeric_junctions_report,
                log=workspace.chimeric_junctions_dir
                / f"find_chimeric_junctions_from_exon_to_exon_connections_{config.sample_id}.err",
            )
        ]


class PairedEndSupportStage(CommandStage):
    """Find gene to gene connections supported by paired-end reads."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "find_paired_end_support"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Find gene to gene connections supported by paired-end reads"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"filter_unique_mappings"}

    @property
    def soft_dependencies(self) -> Set[str]:
        """Return the set of stage names this stage prefers to run after."""
        return {"infer_library_type"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the gene pair support counts."""
        return [context.workspace.pe_gene_connections]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        return [
            Command.pipe(
                [
                    config.tool("bash"),
                    config.script("gene_connections"),
                    workspace.filtered_bam,
                    config.annotation,
                    workspace.pe_support_dir,
                    context.read_directionality,
                ],
                log=workspace.log_file(workspace.pe_support_dir, "gene_connections"),
            )
        ]


class PairedEndMergeStage(Stage):
    """Add the paired-end support of each junction's gene pair to the matrix."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "merge_paired_end_support"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Add paired-end support to the chimeric junction matrix"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"find_chimeric_junctions", "find_paired_end_support"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the junction matrix with the PEsupport column."""
        return [context.workspace.junctions_with_pe]

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Join the gene pair support counts onto the junctions."""
        workspace = context.workspace
        junctions = read_junction_matrix(workspace.chimeric_junctions, JUNCTION_COLUMNS)
        support = read_pe_support(workspace.pe_gene_connections)
        junctions = add_pe_support(junctions, support)
        write_junction_matrix(junctions, partial(context, workspace.junctions_with_pe))
        logger.info(
            f"{int((junctions['PEsupport'] != '0').sum())}/{len(junctions)} junctions "
            "have paired-end support"
        )
        return context


class GeneSimilarityStage(CommandStage):
    """Provide the gene pair similarity file.

    A user supplied file is used as is. Otherwise the similarity between the
    annotated genes is computed once and cached under genePairSim.
    """

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "gene_pair_similarity"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Compute sequence similarity between annotated gene pairs"

    def similarity_file(self, context: PipelineContext) -> Path:
        """Return the supplied similarity file or the cached one."""
        if context.config.similarity_file is not None:
            return context.config.similarity_file
        return context.workspace.similarity_cache(context.config.annotation_stem)

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the similarity file."""
        return [self.similarity_file(context)]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        return [
            Command.pipe(
                [
                    config.tool("bash"),
                    config.script("gene_similarity"),
                    config.annotation.resolve(),
                    config.genome_index.resolve(),
                ],
                log=workspace.log_file(workspace.similarity_dir, "similarity_bt_gnpairs"),
                cwd=workspace.similarity_dir,
            )
        ]

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Run the similarity script inside the genePairSim directory."""
        context = super()._process(context)
        context.similarity_file = self.similarity_file(context)
        return context

    def _dry_run(self, context: PipelineContext) -> None:
        """Print the similarity command unless a similarity file was supplied."""
        if context.config.similarity_file is not None:
            print(f"# {self.name}: using {context.config.similarity_file}")
        else:
            super()._dry_run(context)
        context.similarity_file = self.similarity_file(context)

    def _handle_checkpoint_skip(self, context: PipelineContext) -> PipelineContext:
        """Point the context at the existing similarity file."""
        context.similarity_file = self.similarity_file(context)
        logger.info(f"Using gene pair similarity file {context.similarity_file}")
        return context


class SimilarityMergeStage(Stage):
    """Add the maximum similarity between each junction's genes to the matrix."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "merge_gene_similarity"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Add gene pair similarity to the chimeric junction matrix"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"merge_paired_end_support", "gene_pair_similarity"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the junction matrix with the maxSim and maxLgal columns."""
        return [context.workspace.junctions_with_similarity]

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Join the gene pair similarities onto the junctions."""
        workspace = context.workspace
        if context.similarity_file is None:
            raise ValueError("No gene pair similarity file available")
        junctions = read_junction_matrix(workspace.junctions_with_pe, PE_COLUMNS)
        similarity = read_gene_similarity(context.similarity_file)
        junctions = add_gene_similarity(junctions, similarity)
        write_junction_matrix(junctions, partial(context, workspace.junctions_with_similarity))
        return context
