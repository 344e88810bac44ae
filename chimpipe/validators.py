# File: chimpipe/validators.py
# Location: chimpipe/chimpipe/validators.py

"""
Validation module for chimpipe.

This module provides functions to validate:
- Mandatory inputs per input mode (existence, non-empty)
- Enumerated options (log level, sequencing library)
- Unsigned integer, splice consensus and filter configuration grammars
- Output and scratch directories

ConfigValidator turns the merged option dictionary into an immutable
PipelineConfig. All checks run before any stage is executed.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .config import load_config
from .filters import FilterConfiguration
from .library_type import LibraryType
from .pipeline_config import InputMode, MappingParameters, PipelineConfig
from .pipeline_core.error_handling import (
    ConfigurationError,
    validate_existing_directory,
    validate_input_path,
)

logger = logging.getLogger("chimpipe")

LOG_LEVELS = ("error", "warn", "info", "debug")

UNSIGNED_INT_PATTERN = re.compile(r"[0-9]+")
SPLICE_CONSENSUS_PATTERN = re.compile(r"[ACGT.]+\+[ACGT.]+(,[ACGT.]+\+[ACGT.]+)*")

TRUE_STRINGS = ("true", "yes", "1")
FALSE_STRINGS = ("false", "no", "0")

# Option key -> command-line flag used in error messages
OPTION_FLAGS = {
    "fastq_1": "--fastq_1",
    "fastq_2": "--fastq_2",
    "bam": "--bam",
    "genome_index": "--genome-index",
    "annotation": "--annotation",
    "transcriptome_index": "--transcriptome-index",
    "transcriptome_keys": "--transcriptome-keys",
    "sample_id": "--sample-id",
    "log_level": "--log",
    "threads": "--threads",
    "output_dir": "--output-dir",
    "tmp_dir": "--tmp-dir",
    "keep_intermediates": "--no-cleanup",
    "dry_run": "--dry",
    "max_read_length": "--max-read-length",
    "seq_library": "--seq-library",
    "consensus_ss_fm": "--consensus-ss-fm",
    "min_split_size_fm": "--min-split-size-fm",
    "refinement_step_size_fm": "--refinement-step-size-fm",
    "mapping_stats": "--no-stats",
    "consensus_ss_sm": "--consensus-ss-sm",
    "min_split_size_sm": "--min-split-size-sm",
    "refinement_step_size_sm": "--refinement-step-size-sm",
    "filter_chimeras": "--filter-chimeras",
    "similarity_gene_pairs": "--similarity-gene-pairs",
    "scripts_dir": "--scripts-dir",
}

RAW_READS_INPUTS = (
    "fastq_1",
    "fastq_2",
    "genome_index",
    "annotation",
    "transcriptome_index",
    "transcriptome_keys",
)
PRE_ALIGNED_INPUTS = ("bam", "genome_index", "annotation")


def option_flag(key: str) -> str:
    """Return the command-line flag for an option key."""
    return OPTION_FLAGS.get(key, key)


def parse_unsigned_int(value: Any, option: str) -> int:
    """
    Parse a value following the unsigned integer grammar [0-9]+.

    Raises
    ------
    ConfigurationError
        If the value is not a non-negative integer.
    """
    if isinstance(value, bool):
        raise ConfigurationError(option, f"'{value}' is not an unsigned integer")
    if isinstance(value, int):
        if value < 0:
            raise ConfigurationError(option, f"'{value}' is not an unsigned integer")
        return value
    if not isinstance(value, str) or not UNSIGNED_INT_PATTERN.fullmatch(value):
        raise ConfigurationError(option, f"'{value}' is not an unsigned integer")
    return int(value)


def parse_positive_int(value: Any, option: str) -> int:
    """Parse an unsigned integer that must also be greater than zero."""
    number = parse_unsigned_int(value, option)
    if number == 0:
        raise ConfigurationError(option, "must be greater than 0")
    return number


def parse_bool(value: Any, option: str) -> bool:
    """
    Parse a boolean given as a real bool or as true/false/yes/no/1/0.

    Raises
    ------
    ConfigurationError
        If the value cannot be interpreted as a boolean.
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ConfigurationError(option, f"'{value}' is not a boolean [true | false]")


def validate_splice_consensus(value: Any, option: str) -> str:
    """
    Validate a comma-separated list of splice site consensus pairs.

    Each pair is 'donor+acceptor', both over the alphabet A, C, G, T and the
    wildcard '.', e.g. 'GT+AG,GC+AG,ATATC+A.'.

    Raises
    ------
    ConfigurationError
        If the value does not follow the grammar.
    """
    if not isinstance(value, str) or not SPLICE_CONSENSUS_PATTERN.fullmatch(value):
        raise ConfigurationError(
            option,
            f"'{value}' is not a splice site consensus list "
            "(e.g. 'GT+AG,GC+AG,ATATC+A.,GTATC+AT')",
        )
    return value


def validate_log_level(value: Any, option: str) -> str:
    """Validate the log level against error, warn, info and debug."""
    if value not in LOG_LEVELS:
        raise ConfigurationError(option, f"'{value}' is not a log level [{' | '.join(LOG_LEVELS)}]")
    return value


def parse_filter_configuration(value: Any, option: str) -> FilterConfiguration:
    """Parse the filtering module configuration, reporting errors by option."""
    try:
        return FilterConfiguration.parse(value)
    except ValueError as e:
        raise ConfigurationError(option, str(e))


def _is_given(value: Any) -> bool:
    return value is not None and value != ""


class ConfigValidator:
    """
    Build a PipelineConfig from a dictionary of raw options.

    Parameters
    ----------
    options : Mapping[str, Any]
        Raw option values keyed as in config.json. Values may be strings as
        received from the command line.
    defaults : Mapping[str, Any], optional
        Default values; the packaged config.json when None. Options that are
        None or absent fall back to these.
    """

    def __init__(self, options: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None):
        self.options = dict(options)
        self.defaults = dict(defaults) if defaults is not None else load_config()

    def _get(self, key: str) -> Any:
        value = self.options.get(key)
        if value is None:
            return self.defaults.get(key)
        return value

    def _mandatory_path(self, key: str) -> Path:
        value = self.options.get(key)
        if not _is_given(value):
            raise ConfigurationError(option_flag(key), "is mandatory")
        return validate_input_path(value, option_flag(key))

    def _optional_path(self, key: str) -> Optional[Path]:
        value = self.options.get(key)
        if not _is_given(value):
            return None
        return validate_input_path(value, option_flag(key))

    def input_mode(self) -> InputMode:
        """
        Determine the input mode from the supplied read inputs.

        Raises
        ------
        ConfigurationError
            If both a BAM file and FASTQ files are supplied.
        """
        has_bam = _is_given(self.options.get("bam"))
        has_fastq = _is_given(self.options.get("fastq_1")) or _is_given(
            self.options.get("fastq_2")
        )
        if has_bam and has_fastq:
            raise ConfigurationError(
                option_flag("bam"), "cannot be combined with --fastq_1/--fastq_2"
            )
        return InputMode.PRE_ALIGNED if has_bam else InputMode.RAW_READS

    def validate(self) -> PipelineConfig:
        """
        Validate every option and return the immutable run configuration.

        Returns
        -------
        PipelineConfig
            The validated configuration.

        Raises
        ------
        ConfigurationError
            If an option is missing or malformed.
        MissingInputError
            If a mandatory input does not exist or is empty.
        """
        mode = self.input_mode()
        required = PRE_ALIGNED_INPUTS if mode is InputMode.PRE_ALIGNED else RAW_READS_INPUTS
        paths = {key: self._mandatory_path(key) for key in required}

        sample_id = self.options.get("sample_id")
        if not _is_given(sample_id) or not str(sample_id).strip():
            raise ConfigurationError(option_flag("sample_id"), "is mandatory")
        sample_id = str(sample_id).strip()

        log_level = validate_log_level(self._get("log_level"), option_flag("log_level"))
        threads = parse_positive_int(self._get("threads"), option_flag("threads"))
        max_read_length = parse_positive_int(
            self._get("max_read_length"), option_flag("max_read_length")
        )

        library_type = None
        seq_library = self.options.get("seq_library")
        if _is_given(seq_library):
            try:
                library_type = LibraryType.from_string(seq_library)
            except ValueError as e:
                raise ConfigurationError(option_flag("seq_library"), str(e))

        first_pass = MappingParameters(
            splice_consensus=validate_splice_consensus(
                self._get("consensus_ss_fm"), option_flag("consensus_ss_fm")
            ),
            min_split_size=parse_unsigned_int(
                self._get("min_split_size_fm"), option_flag("min_split_size_fm")
            ),
            refinement_step=parse_unsigned_int(
                self._get("refinement_step_size_fm"), option_flag("refinement_step_size_fm")
            ),
            stats=parse_bool(self._get("mapping_stats"), option_flag("mapping_stats")),
        )
        second_pass = MappingParameters(
            splice_consensus=validate_splice_consensus(
                self._get("consensus_ss_sm"), option_flag("consensus_ss_sm")
            ),
            min_split_size=parse_unsigned_int(
                self._get("min_split_size_sm"), option_flag("min_split_size_sm")
            ),
            refinement_step=parse_unsigned_int(
                self._get("refinement_step_size_sm"), option_flag("refinement_step_size_sm")
            ),
        )
        filter_configuration = parse_filter_configuration(
            self._get("filter_chimeras"), option_flag("filter_chimeras")
        )

        output_dir = validate_existing_directory(
            self._get("output_dir") or os.getcwd(), option_flag("output_dir")
        )
        scratch_dir = validate_existing_directory(
            self._get("tmp_dir") or tempfile.gettempdir(), option_flag("tmp_dir")
        )
        similarity_file = self._optional_path("similarity_gene_pairs")

        keep_intermediates = parse_bool(
            self._get("keep_intermediates"), option_flag("keep_intermediates")
        )
        dry_run = parse_bool(self._get("dry_run"), option_flag("dry_run"))

        config = PipelineConfig(
            sample_id=sample_id,
            input_mode=mode,
            genome_index=paths["genome_index"],
            annotation=paths["annotation"],
            output_dir=output_dir.resolve(),
            scratch_dir=scratch_dir.resolve(),
            first_pass=first_pass,
            second_pass=second_pass,
            filter_configuration=filter_configuration,
            fastq1=paths.get("fastq_1"),
            fastq2=paths.get("fastq_2"),
            bam=paths.get("bam"),
            transcriptome_index=paths.get("transcriptome_index"),
            transcriptome_keys=paths.get("transcriptome_keys"),
            log_level=log_level,
            threads=threads,
            max_read_length=max_read_length,
            library_type=library_type,
            similarity_file=similarity_file,
            keep_intermediates=keep_intermediates,
            dry_run=dry_run,
            scripts_dir=self._scripts_dir(),
            tools=dict(self.defaults.get("tools", {}), **(self.options.get("tools") or {})),
            scripts=dict(self.defaults.get("scripts", {}), **(self.options.get("scripts") or {})),
        )
        logger.debug(f"Validated configuration for sample '{config.sample_id}' ({mode.value})")
        return config

    def _scripts_dir(self) -> Path:
        """Resolve the helper scripts directory: option, environment, package default."""
        value = self._get("scripts_dir")
        if _is_given(value):
            return Path(value)
        env_value = os.environ.get("CHIMPIPE_SCRIPTS_DIR")
        if env_value:
            return Path(env_value)
        return Path(__file__).resolve().parent / "scripts"
