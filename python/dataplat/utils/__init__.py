"""
General utilities used across the dataplat subsystems: an extra logging level
(:py:mod:`~dataplat.utils.logging`) and a framework for building command-line tools
(:py:mod:`~dataplat.utils.cli`).
"""
from .logging import blab
