"""
Core logic for summarise: file selection and aggregation.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import IO, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from colorama import Fore, Style

from .rules import RuleSet


# Exceptions
class SummariseError(Exception): ...
class InvalidRootError(SummariseError): ...
class IgnoreFileUnreadableError(SummariseError): ...
class OutputError(SummariseError): ...


class FileReadError(SummariseError):
    def __init__(self, path: str, reason: object) -> None:
        super().__init__(f"Could not read '{path}': {reason}")
        self.path = path


# Defaults & helpers
DEFAULT_PATTERNS: List[str] = [
    # version control metadata
    ".git/",
    ".hg/",
    ".svn/",
    ".bzr/",
    "CVS/",
    # dependencies, caches, build output
    "node_modules/",
    "__pycache__/",
    ".venv/",
    "venv/",
    ".tox/",
    ".mypy_cache/",
    ".pytest_cache/",
    ".gradle/",
    ".idea/",
    "build/",
    "dist/",
    "target/",
    # binaries, logs, local secrets
    "*.pyc",
    "*.pyo",
    "*.class",
    "*.jar",
    "*.o",
    "*.so",
    "*.dll",
    "*.exe",
    "*.log",
    ".DS_Store",
    ".env",
]

DELIMITER = "=== FILE: {path} ==="

# Source files and the destination share this so content round-trips byte for byte.
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class Reporter:
    """
    Diagnostic channel, separate from the data written to stdout.

    Lines are prefixed with ``LOG:`` and only emitted when *verbose* is set.
    """

    PREFIX = "LOG:"

    def __init__(self, verbose: bool = False, stream: Optional[IO[str]] = None) -> None:
        self.verbose = verbose
        self._stream = stream

    @property
    def stream(self) -> IO[str]:
        return self._stream if self._stream is not None else sys.stderr

    def _emit(self, msg: str, color: str = "") -> None:
        if not self.verbose:
            return
        line = f"{self.PREFIX} {msg}"
        isatty = getattr(self.stream, "isatty", None)
        if color and isatty is not None and isatty():
            line = f"{self.PREFIX} {color}{msg}{Style.RESET_ALL}"
        print(line, file=self.stream)

    def log(self, msg: str) -> None:
        self._emit(msg)

    def warn(self, msg: str) -> None:
        self._emit(msg, Fore.YELLOW)

    def done(self, msg: str) -> None:
        self._emit(msg, Fore.GREEN)


_QUIET = Reporter()


# Rule loading
def _read_ignore_file(path: Path) -> List[str]:
    if not path.exists():
        raise IgnoreFileUnreadableError(f"Ignore file '{path}' does not exist")
    if not path.is_file():
        raise IgnoreFileUnreadableError(f"'{path}' is not a file")
    try:
        with path.open("r", encoding="utf-8") as fh:
            return fh.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise IgnoreFileUnreadableError(f"Could not read ignore file '{path}': {e}") from e


def load_rules(
    ignore_file: Optional[Path] = None,
    *,
    use_defaults: bool = True,
    gitignore_root: Optional[Path] = None,
    extra_patterns: Sequence[str] = (),
    reporter: Optional[Reporter] = None,
) -> RuleSet:
    """
    Build the single ordered rule list for one run.

    Order is defaults, ``<gitignore_root>/.gitignore``, *ignore_file*, then
    *extra_patterns*; a later rule overrides an earlier one.
    """
    reporter = reporter or _QUIET
    rules = RuleSet()
    if use_defaults:
        rules += RuleSet.from_lines(DEFAULT_PATTERNS, "<defaults>")

    if gitignore_root is not None:
        gitignore = Path(gitignore_root) / ".gitignore"
        if gitignore.is_file():
            rules += RuleSet.from_lines(_read_ignore_file(gitignore), str(gitignore))
            reporter.log(f"Loaded patterns from {gitignore}")

    if ignore_file is not None:
        ignore_file = Path(ignore_file)
        user = RuleSet.from_lines(_read_ignore_file(ignore_file), str(ignore_file))
        rules += user
        reporter.log(f"Loaded {len(user)} pattern(s) from {ignore_file}")

    if extra_patterns:
        rules += RuleSet.from_lines(extra_patterns, "<extra>")

    for warning in rules.warnings:
        reporter.warn(str(warning))
    return rules


# Selector
def check_root(root: Path) -> Path:
    try:
        root = root.resolve()
    except (OSError, RuntimeError) as e:
        raise InvalidRootError(f"Could not resolve root path '{root}': {e}") from e
    if not root.exists():
        raise InvalidRootError(f"Root directory '{root}' does not exist")
    if not root.is_dir():
        raise InvalidRootError(f"Root path '{root}' is not a directory")
    return root


def _walk(
    root: Path,
    rules: RuleSet,
    reporter: Reporter,
    follow_symlinks: bool,
) -> Iterable[str]:
    """Yield the relative POSIX path of every included regular file."""
    root_str = str(root)
    # Physical (device, inode) of every directory on the way down to each dirpath.
    chains: Dict[str, FrozenSet[Tuple[int, int]]] = {}

    def _on_error(err: OSError) -> None:
        if err.filename is not None and os.path.abspath(err.filename) == root_str:
            raise InvalidRootError(f"Could not scan directory '{root}': {err}") from err
        reporter.warn(f"Skipping unreadable directory {err.filename}: {err.strerror}")

    for dirpath, dirnames, filenames in os.walk(root_str, onerror=_on_error, followlinks=follow_symlinks):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"

        if follow_symlinks:
            st = os.stat(dirpath)
            key = (st.st_dev, st.st_ino)
            above = chains.get(os.path.dirname(dirpath), frozenset())
            if key in above:
                reporter.warn(f"Skipping symlink cycle at {rel_dir}")
                dirnames[:] = []
                continue
            chains[dirpath] = above | {key}

        kept_dirs = []
        for name in sorted(dirnames):
            rel = prefix + name
            if rules.is_excluded(rel, is_dir=True):
                reporter.log(f"Pruned {rel}/")
            else:
                kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for name in filenames:
            rel = prefix + name
            if not os.path.isfile(os.path.join(dirpath, name)):
                continue
            if rules.is_excluded(rel, is_dir=False):
                reporter.log(f"Excluded {rel}")
                continue
            yield rel


def select_files(
    root: Path,
    ignore_file: Optional[Path] = None,
    *,
    rules: Optional[RuleSet] = None,
    reporter: Optional[Reporter] = None,
    follow_symlinks: bool = False,
) -> List[str]:
    """
    Return the sorted, de-duplicated relative paths of every file under *root*
    that survives the ignore rules.

    A directory excluded by a rule is never entered, so a negation rule cannot
    bring back anything beneath it.

    Pass either *ignore_file* or a pre-built *rules*, not both. Paths are
    ordered by their filesystem bytes.
    """
    if rules is not None and ignore_file is not None:
        raise TypeError("select_files() takes either ignore_file or rules, not both")
    reporter = reporter or _QUIET
    root = check_root(Path(root))
    if rules is None:
        rules = load_rules(ignore_file, reporter=reporter)

    reporter.log(f"Scanning {root} with {len(rules)} rule(s)")
    selected = sorted(set(_walk(root, rules, reporter, follow_symlinks)), key=os.fsencode)
    reporter.log(f"{len(selected)} file(s) selected")
    return selected


# Aggregator
def aggregate(
    root: Path,
    selection: Iterable[str],
    destination: IO[str],
    *,
    reporter: Optional[Reporter] = None,
    skip_unreadable: bool = False,
) -> int:
    """
    Write each selected file under its ``=== FILE: <path> ===`` delimiter.

    Returns the number of files written. An unreadable file raises
    :class:`FileReadError` unless *skip_unreadable* is set.
    """
    reporter = reporter or _QUIET
    root = Path(root)
    count = 0
    for rel in selection:
        try:
            with (root / rel).open("r", encoding=_ENCODING, errors=_ERRORS, newline="") as fh:
                content = fh.read()
        except OSError as e:
            if not skip_unreadable:
                raise FileReadError(rel, e.strerror or e) from e
            reporter.warn(f"Skipping unreadable file {rel}: {e.strerror or e}")
            continue

        destination.write(DELIMITER.format(path=rel) + "\n")
        destination.write(content)
        if content and not content.endswith("\n"):
            destination.write("\n")
        destination.write("\n")
        count += 1
    return count


def _discard(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def write_summary(
    root: Path,
    out_path: Path,
    selection: Sequence[str],
    *,
    reporter: Optional[Reporter] = None,
    skip_unreadable: bool = False,
) -> int:
    """
    Aggregate *selection* into *out_path*.

    The document is built in a temporary file beside *out_path* and renamed
    into place only once complete; on failure *out_path* is left untouched.
    """
    reporter = reporter or _QUIET
    try:
        out_path = Path(out_path).resolve()
    except (OSError, RuntimeError) as e:
        raise OutputError(f"Could not resolve output path '{out_path}': {e}") from e

    if not out_path.parent.exists():
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputError(f"Could not create directory '{out_path.parent}': {e}") from e

    reporter.log(f"Writing to {out_path}")
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".tmp", dir=out_path.parent)
    except OSError as e:
        raise OutputError(f"Could not create temporary file in '{out_path.parent}': {e}") from e

    try:
        with os.fdopen(fd, "w", encoding=_ENCODING, errors=_ERRORS, newline="") as out_fh:
            count = aggregate(root, selection, out_fh, reporter=reporter, skip_unreadable=skip_unreadable)
        os.replace(tmp_name, out_path)
    except OSError as e:
        _discard(tmp_name)
        raise OutputError(f"Could not write to output file '{out_path}': {e}") from e
    except BaseException:
        _discard(tmp_name)
        raise

    reporter.done(f"Done -> {out_path}. {count} file(s) written.")
    return count
