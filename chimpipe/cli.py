"""Command-line interface for chimpipe."""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import load_config, merge_config
from .pipeline import run_pipeline
from .pipeline_core.error_handling import (
    ConfigurationError,
    MissingInputError,
    PipelineError,
)
from .validators import ConfigValidator
from .version import __version__

logger = logging.getLogger("chimpipe")

LOG_LEVEL_MAP = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for the chimpipe CLI."""
    parser = argparse.ArgumentParser(
        prog="chimpipe",
        description="chimpipe: detect chimeric splice junctions from paired-end RNA-seq data.",
    )

    # Values are kept as strings; the configuration validator checks them.
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"chimpipe {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log",
        dest="log_level",
        help="Log level [error | warn | info | debug]. Default: warn",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "--config",
        help="Path to a JSON configuration file overriding the packaged defaults.",
    )
    general_group.add_argument("--threads", help="Number of threads to use. Default: 1")
    general_group.add_argument(
        "-o", "--output-dir", dest="output_dir", help="Output directory. Default: current directory"
    )
    general_group.add_argument(
        "--tmp-dir", dest="tmp_dir", help="Temporary directory. Default: system temporary directory"
    )
    general_group.add_argument(
        "--no-cleanup",
        dest="keep_intermediates",
        action="store_const",
        const=True,
        help="Keep intermediate files.",
    )
    general_group.add_argument(
        "--dry",
        dest="dry_run",
        action="store_const",
        const=True,
        help="Print the commands that would be executed without running them.",
    )
    general_group.add_argument(
        "--scripts-dir",
        dest="scripts_dir",
        help="Directory holding the helper awk and bash scripts.",
    )

    io_group = parser.add_argument_group("Mandatory Arguments")
    io_group.add_argument("--fastq_1", dest="fastq_1", help="First mate sequencing reads (FASTQ).")
    io_group.add_argument("--fastq_2", dest="fastq_2", help="Second mate sequencing reads (FASTQ).")
    io_group.add_argument(
        "--bam", help="First mapping BAM file, used instead of the FASTQ files."
    )
    io_group.add_argument(
        "-g", "--genome-index", dest="genome_index", help="Reference genome index in GEM format."
    )
    io_group.add_argument(
        "-a", "--annotation", help="Reference gene annotation file in GTF format."
    )
    io_group.add_argument(
        "-t",
        "--transcriptome-index",
        dest="transcriptome_index",
        help="Annotated transcriptome index in GEM format.",
    )
    io_group.add_argument(
        "-k",
        "--transcriptome-keys",
        dest="transcriptome_keys",
        help="Transcriptome to genome coordinate conversion keys.",
    )
    io_group.add_argument(
        "--sample-id", dest="sample_id", help="Sample identifier, used to name output files."
    )

    reads_group = parser.add_argument_group("Reads Information")
    reads_group.add_argument(
        "--max-read-length", dest="max_read_length", help="Maximum read length. Default: 150"
    )
    reads_group.add_argument(
        "-l",
        "--seq-library",
        dest="seq_library",
        help="Sequencing library type [MATE1_SENSE | MATE2_SENSE | UNSTRANDED]. "
        "Inferred from the first mapping when not given.",
    )

    first_map_group = parser.add_argument_group("First Mapping")
    first_map_group.add_argument(
        "-C",
        "--consensus-ss-fm",
        dest="consensus_ss_fm",
        help="Splice site consensus sequences. Default: GT+AG,GC+AG,ATATC+A.,GTATC+AT",
    )
    first_map_group.add_argument(
        "-S", "--min-split-size-fm", dest="min_split_size_fm", help="Minimum split size. Default: 15"
    )
    first_map_group.add_argument(
        "--refinement-step-size-fm",
        dest="refinement_step_size_fm",
        help="Refinement step size, 0 disables refinement. Default: 2",
    )
    first_map_group.add_argument(
        "--no-stats",
        dest="mapping_stats",
        action="store_const",
        const=False,
        help="Disable first mapping statistics.",
    )

    second_map_group = parser.add_argument_group("Second Mapping")
    second_map_group.add_argument(
        "-c",
        "--consensus-ss-sm",
        dest="consensus_ss_sm",
        help="Splice site consensus sequences. Default: GT+AG",
    )
    second_map_group.add_argument(
        "-s", "--min-split-size-sm", dest="min_split_size_sm", help="Minimum split size. Default: 15"
    )
    second_map_group.add_argument(
        "--refinement-step-size-sm",
        dest="refinement_step_size_sm",
        help="Refinement step size, 0 disables refinement. Default: 2",
    )

    detection_group = parser.add_argument_group("Chimera Detection")
    detection_group.add_argument(
        "--filter-chimeras",
        dest="filter_chimeras",
        help="Filtering module configuration, one or two "
        "'staggered,PE-support,max-similarity,max-similarity-length;' blocks. "
        "Default: 5,0,80,30;1,1,80,30;",
    )
    detection_group.add_argument(
        "--similarity-gene-pairs",
        dest="similarity_gene_pairs",
        help="Precomputed gene pair similarity file. Computed from the annotation when not given.",
    )

    return parser


def parse_args(args_list: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Parameters
    ----------
    args_list : list, optional
        List of arguments to parse. If None, uses sys.argv

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def build_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Layer packaged defaults, the --config file and the command-line values."""
    defaults = load_config()
    layers = [defaults]
    if args.config:
        layers.append(load_config(args.config))
    cli_values = {
        key: value for key, value in vars(args).items() if key not in ("config", "log_file")
    }
    layers.append(cli_values)
    return merge_config(*layers)


def configure_logging(log_level: Optional[str], log_file: Optional[str]) -> None:
    """Set the chimpipe logger level and optionally add a file handler."""
    level = LOG_LEVEL_MAP.get(log_level or "warn", logging.WARNING)
    logger.setLevel(level)

    if log_file:
        log_file_path = Path(log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(log_file)
        fh.setLevel(level)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(fh)
        logger.debug(f"Logging to file enabled: {log_file}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run main entry point for the chimpipe CLI.

    Steps:
        1. Parse arguments.
        2. Load and layer the configuration.
        3. Configure logging.
        4. Validate the configuration.
        5. Run the pipeline.

    Returns
    -------
    int
        0 on success, 2 for invalid options or missing inputs, 1 when the
        pipeline fails.
    """
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        options = build_options(args)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Cannot load configuration: {e}")
        return EXIT_USAGE

    configure_logging(options.get("log_level"), args.log_file)

    start_time = datetime.datetime.now()
    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        config = ConfigValidator(options, defaults=load_config()).validate()
    except (ConfigurationError, MissingInputError) as e:
        logger.error(str(e))
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    try:
        run_pipeline(config)
    except (PipelineError, OSError, ValueError) as e:
        # OSError: output directories; ValueError: invalid stage order
        logger.error(f"Pipeline failed: {e}")
        return EXIT_FAILURE

    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
