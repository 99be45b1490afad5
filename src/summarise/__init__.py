"""
Summarise - flatten a project into a single annotated text document.

This package walks a directory tree, drops files matched by built-in
exclusions and an optional ignore file (``.gitignore`` syntax), and
concatenates the remaining files under ``=== FILE: <path> ===`` headers for
downstream tools and language models.
"""

__version__ = "0.1.0"
__author__ = "Summarise Team"

from .core import (  # noqa: E402
    DEFAULT_PATTERNS,
    FileReadError,
    IgnoreFileUnreadableError,
    InvalidRootError,
    OutputError,
    Reporter,
    SummariseError,
    aggregate,
    load_rules,
    select_files,
    write_summary,
)
from .rules import IgnoreRule, PatternParseWarning, RuleSet  # noqa: E402

__all__ = [
    "DEFAULT_PATTERNS",
    "FileReadError",
    "IgnoreFileUnreadableError",
    "IgnoreRule",
    "InvalidRootError",
    "OutputError",
    "PatternParseWarning",
    "Reporter",
    "RuleSet",
    "SummariseError",
    "aggregate",
    "load_rules",
    "select_files",
    "write_summary",
]
