"""
Ignore rules: pattern compiler, rule parsing and last-match-wins evaluation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import pathspec


class PatternError(ValueError):
    """Raised by :func:`compile_glob` for a pattern it cannot compile."""


class PatternParseWarning(UserWarning):
    """A malformed ignore line that was skipped."""

    def __init__(self, source: str, lineno: int, line: str, reason: str) -> None:
        super().__init__(f"{source}:{lineno}: skipping pattern {line!r}: {reason}")
        self.source = source
        self.lineno = lineno
        self.line = line
        self.reason = reason


_GLOB_SPECIAL = "*?[\\"


def escape_glob(text: str) -> str:
    """Escape *text* so it matches itself literally."""
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in text)


def _clean_line(line: str) -> str:
    """Strip surrounding whitespace, keeping a trailing space escaped as ``\\ ``."""
    text = line.strip()
    rest = line.lstrip()
    trailing = len(text) - len(text.rstrip("\\"))
    if trailing % 2 and rest[len(text):len(text) + 1] == " ":
        text += " "
    return text


def _translate_class(body: str) -> str:
    if body[:1] in ("!", "^"):
        head, body = "^", body[1:]
    else:
        head = ""
    # '[', '&', '~' and '|' would read as nested sets or set operations to re.
    return "[" + head + "".join("\\" + ch if ch in "\\[&~|" else ch for ch in body) + "]"


def compile_glob(glob: str) -> re.Pattern[str]:
    """
    Compile a glob into a regex that must match a whole path string.

    ``*`` and ``?`` never cross ``/``; ``**`` does, and ``**/`` may also match
    nothing so that ``**/foo`` matches a top-level ``foo``.
    """
    out: List[str] = []
    i, n = 0, len(glob)
    while i < n:
        ch = glob[i]
        if ch == "*":
            if glob.startswith("**", i):
                if glob.startswith("**/", i):
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            # A ']' right after '[' (or '[!') is literal.
            j = i + 1
            if j < n and glob[j] in "!^":
                j += 1
            if j < n and glob[j] == "]":
                j += 1
            end = glob.find("]", j)
            if end < 0:
                raise PatternError(f"unterminated character class in {glob!r}")
            body = glob[i + 1:end]
            if "/" in body:
                raise PatternError(f"'/' inside character class in {glob!r}")
            out.append(_translate_class(body))
            i = end
        elif ch == "\\":
            if i + 1 >= n:
                raise PatternError(f"dangling escape in {glob!r}")
            i += 1
            out.append(re.escape(glob[i]))
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out), re.DOTALL)


@dataclass(frozen=True)
class IgnoreRule:
    """One compiled ignore line.

    ``negated`` rules re-include; ``dir_only`` rules only ever match
    directories; ``anchored`` rules match the full relative path, the others
    match the basename at any depth.
    """

    pattern: str
    negated: bool = False
    dir_only: bool = False
    anchored: bool = False
    source: str = "<defaults>"
    lineno: int = 0
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_glob(self.pattern))

    @classmethod
    def parse(cls, line: str, source: str = "<defaults>", lineno: int = 0) -> Optional["IgnoreRule"]:
        """
        Build a rule from a raw ignore-file line.

        Returns ``None`` for blank and comment lines; raises
        :class:`PatternError` for malformed ones.
        """
        text = _clean_line(line)
        if not text or text.startswith("#"):
            return None

        negated = text.startswith("!")
        if negated:
            text = text[1:]
        dir_only = text.endswith("/")
        if dir_only:
            text = text.rstrip("/")
        anchored = "/" in text
        text = text.lstrip("/")
        if not text:
            raise PatternError("pattern is empty")

        return cls(
            pattern=text,
            negated=negated,
            dir_only=dir_only,
            anchored=anchored,
            source=source,
            lineno=lineno,
        )

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        target = rel_path if self.anchored else rel_path.rpartition("/")[2]
        return self._regex.fullmatch(target) is not None

    def __str__(self) -> str:
        return ("!" if self.negated else "") + self.pattern + ("/" if self.dir_only else "")


def _git_rejects(line: str) -> Optional[str]:
    # Lines git itself refuses or discards are reported, not silently honoured.
    try:
        compiled = pathspec.GitIgnoreSpec.from_lines([line]).patterns
    except ValueError as e:
        return str(e)
    if not compiled or compiled[0].include is None:
        return "git treats this pattern as a no-op"
    return None


def parse_ignore_lines(
    lines: Iterable[str],
    source: str,
) -> Tuple[List[IgnoreRule], List[PatternParseWarning]]:
    """Parse *lines* into rules, collecting a warning for each skipped line."""
    rules: List[IgnoreRule] = []
    warnings: List[PatternParseWarning] = []
    for lineno, raw in enumerate(lines, start=1):
        line = _clean_line(raw)
        if not line or line.startswith("#"):
            continue
        reason = _git_rejects(line)
        if reason is None:
            try:
                rules.append(IgnoreRule.parse(line, source, lineno))
                continue
            except PatternError as e:
                reason = str(e)
        warnings.append(PatternParseWarning(source, lineno, line, reason))
    return rules, warnings


@dataclass(frozen=True)
class RuleSet:
    """Ordered, immutable rule list; the last matching rule decides."""

    rules: Tuple[IgnoreRule, ...] = ()
    warnings: Tuple[PatternParseWarning, ...] = ()

    def __add__(self, other: "RuleSet") -> "RuleSet":
        return RuleSet(self.rules + other.rules, self.warnings + other.warnings)

    def __len__(self) -> int:
        return len(self.rules)

    @classmethod
    def from_lines(cls, lines: Iterable[str], source: str = "<patterns>") -> "RuleSet":
        rules, warnings = parse_ignore_lines(lines, source)
        return cls(tuple(rules), tuple(warnings))

    def deciding_rule(self, rel_path: str, is_dir: bool) -> Optional[IgnoreRule]:
        """Return the last rule matching *rel_path*, if any."""
        for rule in reversed(self.rules):
            if rule.matches(rel_path, is_dir):
                return rule
        return None

    def is_excluded(self, rel_path: str, is_dir: bool = False) -> bool:
        rule = self.deciding_rule(rel_path, is_dir)
        return rule is not None and not rule.negated
