"""
Mapping phase stages.

This module contains the stages that produce and prepare alignments:
- First mapping of the raw reads with the GEMtools RNA-seq pipeline
- Extraction of the reads left unmapped by the first mapping
- Split-mapping of those reads allowing chimeric alignments
- Sequencing library type inference
- Selection of uniquely mapped reads
"""

import logging
from pathlib import Path
from typing import List, Set

from ..library_type import LibraryType, OrientationStatistics, classify_library_type
from ..pipeline_core import PipelineContext
from ..pipeline_core.error_handling import StageExecutionError, is_nonempty_path
from ..staging import ReferenceRole
from ..utils import Command, find_nh_field, read_first_line
from .stage_utils import CommandStage, partial

logger = logging.getLogger(__name__)

QUALITY_PLACEHOLDER = "<quality-offset>"
NH_FIELD_PLACEHOLDER = "<NH-field>"
VALID_QUALITY_OFFSETS = ("33", "64")


class AlignReadsStage(CommandStage):
    """First mapping of the raw reads, producing a sorted BAM file.

    The GEM map, its multi-map filtered version and the BAM conversion are
    produced in turn; a sub-step whose output already exists is not re-run.
    """

    references = (
        ReferenceRole.GENOME_INDEX,
        ReferenceRole.ANNOTATION,
        ReferenceRole.TRANSCRIPTOME_INDEX,
        ReferenceRole.TRANSCRIPTOME_KEYS,
    )

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "align_reads"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Map the reads with the GEMtools RNA-seq pipeline and convert to BAM"

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the sorted first mapping BAM."""
        return [context.workspace.first_map_bam]

    def quality_command(self, context: PipelineContext) -> Command:
        config = context.config
        return Command.pipe([config.tool("bash"), config.script("detect_quality"), config.fastq1])

    def mapping_command(self, context: PipelineContext) -> Command:
        config = context.config
        workspace = context.workspace
        name = workspace.first_map.name[: -len(".map.gz")]
        args = [
            config.tool("gemtools"),
            "--loglevel",
            config.log_level,
            "rna-pipeline",
            "-f",
            config.fastq1,
            config.fastq2,
            "-i",
            self.staged(context, ReferenceRole.GENOME_INDEX),
            "-a",
            self.staged(context, ReferenceRole.ANNOTATION),
            "-r",
            self.staged(context, ReferenceRole.TRANSCRIPTOME_INDEX),
            "-k",
            self.staged(context, ReferenceRole.TRANSCRIPTOME_KEYS),
            "-q",
            context.quality_offset or QUALITY_PLACEHOLDER,
            "--max-read-length",
            config.max_read_length,
            "--max-intron-length",
            300000000,
            "--min-split-size",
            config.first_pass.min_split_size,
            "--refinement-step",
            config.first_pass.refinement_step,
            "--junction-consensus",
            config.first_pass.splice_consensus,
            "--no-filtered",
            "--no-bam",
            "--no-xs",
        ]
        if not config.first_pass.stats:
            args.append("--no-stats")
        args += [
            "--no-count",
            "-n",
            name,
            "--compress-all",
            "--output-dir",
            workspace.staging_dir,
            "-t",
            config.threads,
        ]
        return Command.pipe(
            args, log=workspace.log_file(workspace.first_mapping_dir, "firstMap")
        )

    def copy_map_command(self, context: PipelineContext) -> Command:
        workspace = context.workspace
        return Command.pipe(
            [
                context.config.tool("cp"),
                workspace.staged_first_map,
                partial(context, workspace.first_map),
            ]
        )

    def filter_command(self, context: PipelineContext) -> Command:
        config = context.config
        workspace = context.workspace
        return Command.pipe(
            [
                config.tool("gt_filter_remove"),
                "-i",
                workspace.first_map,
                "--max-matches",
                10,
                "--max-levenshtein-error",
                4,
                "-t",
                config.half_threads,
            ],
            [config.tool("pigz"), "-p", config.half_threads],
            stdout=partial(context, workspace.filtered_first_map),
        )

    def conversion_command(self, context: PipelineContext) -> Command:
        config = context.config
        workspace = context.workspace
        samtools = config.tool("samtools")
        return Command.pipe(
            [config.tool("pigz"), "-p", config.half_threads, "-dc", workspace.filtered_first_map],
            [
                config.tool("gem_2_sam"),
                "-T",
                config.half_threads,
                "-I",
                self.staged(context, ReferenceRole.GENOME_INDEX),
                "--expect-paired-end-reads",
                "-q",
                f"offset-{context.quality_offset or QUALITY_PLACEHOLDER}",
                "-l",
            ],
            [samtools, "view", "-@", config.threads, "-bS", "-"],
            [
                samtools,
                "sort",
                "-@",
                config.threads,
                "-m",
                "4G",
                "-o",
                partial(context, workspace.first_map_bam),
                "-",
            ],
            log=workspace.log_file(workspace.first_mapping_dir, "map2bam_conversion"),
        )

    def build_commands(self, context: PipelineContext) -> List[Command]:
        """Return every command of the stage, including sub-steps that may be reused."""
        return [
            self.quality_command(context),
            self.mapping_command(context),
            self.copy_map_command(context),
            self.filter_command(context),
            self.conversion_command(context),
        ]

    def detect_quality_offset(self, context: PipelineContext) -> str:
        """Run the quality detection script on the first FASTQ file."""
        output = self.run(context, self.quality_command(context))
        fields = output.split()
        offset = fields[1] if len(fields) > 1 else (fields[0] if fields else "")
        if offset not in VALID_QUALITY_OFFSETS:
            raise ValueError(f"Unexpected FASTQ quality offset '{output.strip()}'")
        logger.info(f"The read quality offset is {offset}")
        return offset

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Run the first mapping sub-steps whose outputs are missing."""
        workspace = context.workspace

        context.quality_offset = self.detect_quality_offset(context)
        self.stage_references(context)

        if not is_nonempty_path(workspace.first_map):
            start = self._start_subtask("gemtools_rna_pipeline")
            workspace.remove_partial(workspace.first_map)
            self.run(context, self.mapping_command(context))
            if not is_nonempty_path(workspace.staged_first_map):
                raise StageExecutionError(
                    self.name, f"GEMtools produced no map file {workspace.staged_first_map}"
                )
            self.run(context, self.copy_map_command(context))
            workspace.promote(workspace.first_map)
            self._end_subtask("gemtools_rna_pipeline", start)
        else:
            logger.info(f"First mapping GEM file {workspace.first_map} already exists, reusing it")

        if not is_nonempty_path(workspace.filtered_first_map):
            start = self._start_subtask("multimap_filter")
            workspace.remove_partial(workspace.filtered_first_map)
            self.run(context, self.filter_command(context))
            workspace.promote(workspace.filtered_first_map)
            self._end_subtask("multimap_filter", start)
        else:
            logger.info(
                f"Filtered GEM file {workspace.filtered_first_map} already exists, reusing it"
            )

        start = self._start_subtask("gem_to_bam")
        self.run(context, self.conversion_command(context))
        self._end_subtask("gem_to_bam", start)
        return context


class ExtractUnmappedReadsStage(CommandStage):
    """Extract the reads left unmapped by the first mapping into a FASTQ file."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "extract_unmapped_reads"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Extract unmapped reads to remap"

    @property
    def soft_dependencies(self) -> Set[str]:
        """Return the set of stage names this stage prefers to run after."""
        return {"align_reads"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the FASTQ file of reads to remap."""
        return [context.workspace.reads_to_remap]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        samtools = config.tool("samtools")
        return [
            Command.pipe(
                [samtools, "view", "-h", "-f", 4, "-@", config.threads, context.first_map_bam],
                [config.tool("awk"), "-v", "OFS=\\t", "-f", config.script("add_mate_info")],
                [samtools, "view", "-@", config.threads, "-bS", "-"],
                [
                    config.tool("bedtools"),
                    "bamtofastq",
                    "-i",
                    "-",
                    "-fq",
                    partial(context, workspace.reads_to_remap),
                ],
                log=workspace.log_file(workspace.second_mapping_dir, "reads2remap"),
            )
        ]


class RemapUnmappedReadsStage(CommandStage):
    """Split-map the unmapped reads allowing chimeric alignments."""

    references = (ReferenceRole.GENOME_INDEX,)

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "remap_unmapped_reads"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Split-map unmapped reads across chromosomes, strands and genomic order"

    @property
    def dependencies(self) -> Set[str]:
        """Return the set of stage names this stage depends on."""
        return {"extract_unmapped_reads"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the second mapping GEM file."""
        return [context.workspace.second_map]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        output_prefix = str(partial(context, workspace.second_map))[: -len(".map")]
        return [
            Command.pipe(
                [
                    config.tool("gem_rna_tools"),
                    "split-mapper",
                    "-I",
                    self.staged(context, ReferenceRole.GENOME_INDEX),
                    "-i",
                    workspace.reads_to_remap,
                    "-q",
                    "offset-33",
                    "-o",
                    output_prefix,
                    "-t",
                    10,
                    "-T",
                    config.threads,
                    "--min-split-size",
                    config.second_pass.min_split_size,
                    "--refinement-step-size",
                    config.second_pass.refinement_step,
                    "--splice-consensus",
                    config.second_pass.splice_consensus,
                ],
                log=workspace.log_file(workspace.second_mapping_dir, "secondMap"),
            )
        ]


class LibraryTypeInferenceStage(CommandStage):
    """Infer the sequencing library protocol from the first mapping.

    The decision is written to a small file so that a resumed run can skip
    the inference and read the protocol back.
    """

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "infer_library_type"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Infer the sequencing library type from a sample of mapped reads"

    @property
    def soft_dependencies(self) -> Set[str]:
        """Return the set of stage names this stage prefers to run after."""
        return {"align_reads"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the library type decision file."""
        return [context.workspace.library_type_file]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        return [
            Command.pipe(
                [
                    config.tool("bash"),
                    config.script("infer_library"),
                    context.first_map_bam,
                    config.annotation,
                ]
            )
        ]

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Run the inference script, classify and persist the decision."""
        (command,) = self.build_commands(context)
        statistics = OrientationStatistics.parse(self.run(context, command))
        logger.info(f"Fraction of reads explained by 1++,1--,2+-,2-+: {statistics.fraction1}")
        logger.info(f"Fraction of reads explained by 1+-,1-+,2++,2--: {statistics.fraction2}")
        logger.info(f"Fraction of reads explained by other combinations: {statistics.other}")

        library_type = classify_library_type(statistics)
        logger.info(
            f"Sequencing library type: {library_type.value} "
            f"(strand aware: {library_type.stranded})"
        )
        context.library_type = library_type

        decision_file = partial(context, context.workspace.library_type_file)
        decision_file.write_text(f"{library_type.value}\n", encoding="utf-8")
        return context

    def _handle_checkpoint_skip(self, context: PipelineContext) -> PipelineContext:
        """Read the previously inferred library type back."""
        text = context.workspace.library_type_file.read_text(encoding="utf-8").strip()
        context.library_type = LibraryType.from_string(text)
        logger.info(f"Using previously inferred sequencing library type: {text}")
        return context


class UniqueMappingFilterStage(CommandStage):
    """Keep only uniquely mapped reads of the first mapping for chimera detection."""

    @property
    def name(self) -> str:
        """Return the stage name."""
        return "filter_unique_mappings"

    @property
    def description(self) -> str:
        """Return a description of what this stage does."""
        return "Generate a BAM file with uniquely mapped reads"

    @property
    def soft_dependencies(self) -> Set[str]:
        """Return the set of stage names this stage prefers to run after."""
        return {"align_reads"}

    def get_output_files(self, context: PipelineContext) -> List[Path]:
        """Return the filtered BAM file."""
        return [context.workspace.filtered_bam]

    def nh_detection_argv(self, context: PipelineContext) -> List[str]:
        return [context.config.tool("samtools"), "view", "-F", "4", str(context.first_map_bam)]

    def build_commands(self, context: PipelineContext) -> List[Command]:
        config = context.config
        workspace = context.workspace
        samtools = config.tool("samtools")
        nh_field = context.nh_field if context.nh_field is not None else NH_FIELD_PLACEHOLDER
        return [
            Command.pipe(
                [samtools, "view", "-h", context.first_map_bam],
                [
                    config.tool("awk"),
                    "-v",
                    "OFS=\\t",
                    "-v",
                    "unique=1",
                    "-v",
                    f"NHfield={nh_field}",
                    "-f",
                    config.script("sam_filter"),
                ],
                [samtools, "view", "-@", config.threads, "-bS", "-"],
                stdout=partial(context, workspace.filtered_bam),
                log=workspace.log_file(workspace.first_mapping_dir, "bamFiltering"),
            )
        ]

    def _process(self, context: PipelineContext) -> PipelineContext:
        """Locate the NH tag and filter the BAM file."""
        first_record = read_first_line(
            self.nh_detection_argv(context), env=context.tool_environment()
        )
        nh_field = find_nh_field(first_record)
        if nh_field is None:
            raise ValueError(f"No NH tag found in the first mapped record of {context.first_map_bam}")
        logger.debug(f"NH tag found in column {nh_field}")
        context.nh_field = nh_field
        return super()._process(context)

    def _dry_run(self, context: PipelineContext) -> None:
        """Print the NH detection command and the filtering command."""
        print(f"# {self.name}: {self.description}")
        print(Command.pipe(self.nh_detection_argv(context), ["head", "-n", 1]).render())
        for command in self.build_commands(context):
            print(command.render())
