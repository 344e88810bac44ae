# File: chimpipe/staging.py
# Location: chimpipe/chimpipe/staging.py

"""
Staging of reference files into the scratch directory.

The aligners read the genome index, annotation and transcriptome files many
times, so they are copied once per run to a per-sample scratch directory.
A file whose basename is already present there is reused as is.
"""

import logging
import os
import shlex
import shutil
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from .pipeline_config import PipelineConfig
from .pipeline_core.error_handling import StagingError

logger = logging.getLogger(__name__)


class ReferenceRole(Enum):
    """Reference files that can be staged."""

    GENOME_INDEX = "genome-index"
    ANNOTATION = "annotation"
    TRANSCRIPTOME_INDEX = "transcriptome-index"
    TRANSCRIPTOME_KEYS = "transcriptome-keys"


_CONFIG_FIELDS = {
    ReferenceRole.GENOME_INDEX: "genome_index",
    ReferenceRole.ANNOTATION: "annotation",
    ReferenceRole.TRANSCRIPTOME_INDEX: "transcriptome_index",
    ReferenceRole.TRANSCRIPTOME_KEYS: "transcriptome_keys",
}


class StagingCache:
    """Copy reference files to the staging directory at most once.

    Parameters
    ----------
    config : PipelineConfig
        The run configuration holding the reference source paths.
    staging_dir : Path
        Directory receiving the copies, normally <scratch>/chimpipe_<sample>.
    """

    def __init__(self, config: PipelineConfig, staging_dir: Path):
        self.config = config
        self.staging_dir = Path(staging_dir)
        self._staged: Dict[ReferenceRole, Path] = {}

    def source(self, role: ReferenceRole) -> Optional[Path]:
        """Return the configured source path for a role."""
        return getattr(self.config, _CONFIG_FIELDS[role])

    def target(self, role: ReferenceRole) -> Path:
        """Return the staged location for a role."""
        source = self.source(role)
        if source is None:
            raise StagingError(f"No {role.value} configured for staging")
        return self.staging_dir / Path(source).name

    def ensure_staged(self, role: ReferenceRole) -> Path:
        """
        Make sure the reference for a role is present in the staging directory.

        Parameters
        ----------
        role : ReferenceRole
            The reference to stage.

        Returns
        -------
        Path
            The staged path.

        Raises
        ------
        StagingError
            If the source is missing or the copy fails.
        """
        if role in self._staged:
            return self._staged[role]

        source = self.source(role)
        target = self.target(role)

        if self.config.dry_run:
            if not target.exists():
                print(f"cp {shlex.quote(str(source))} {shlex.quote(str(self.staging_dir))}")
            self._staged[role] = target
            return target

        if target.exists():
            logger.debug(f"{role.value} already staged at {target}")
            self._staged[role] = target
            return target

        if not Path(source).exists():
            raise StagingError(f"Cannot stage {role.value}: '{source}' does not exist")

        partial = target.with_name(f"{target.name}.partial")
        logger.info(f"Copying {role.value} '{source}' to {self.staging_dir}")
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, partial)
            os.replace(partial, target)
        except OSError as e:
            if partial.exists():
                partial.unlink()
            raise StagingError(f"Cannot stage {role.value} '{source}': {e}")

        self._staged[role] = target
        return target

    def staged_roles(self):
        """Return the roles staged during this run."""
        return list(self._staged)
