# File: chimpipe/__init__.py
# Location: chimpipe/chimpipe/__init__.py

"""
chimpipe Package.

This package orchestrates the detection of chimeric splice junctions from
paired-end RNA-seq data: mapping, remapping of unmapped reads, junction
discovery, paired-end corroboration, gene similarity annotation and filtering.
"""

from .version import __version__
