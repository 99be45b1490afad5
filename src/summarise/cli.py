"""
CLI entrypoint for summarise package.
"""
import argparse
import os
import sys
from pathlib import Path
from typing import List, Mapping, Optional

import colorama

from .core import (
    Reporter,
    SummariseError,
    check_root,
    load_rules,
    select_files,
    write_summary,
)
from .rules import escape_glob

_FALSEY = {"", "0", "false", "no", "off"}


def verbose_from_env(environ: Mapping[str, str]) -> bool:
    return environ.get("VERBOSE", "").strip().lower() not in _FALSEY


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="summarise",
        description="Concatenate the selected files of a project into one annotated summary.",
    )
    p.add_argument(
        "--list-files",
        "--test-list-files",
        dest="list_files",
        action="store_true",
        help="Only print the selected paths: summarise --list-files ROOT [IGNORE_FILE]",
    )
    p.add_argument("paths", nargs="+", metavar="PATH", help="ROOT OUT [IGNORE_FILE], or ROOT [IGNORE_FILE] with --list-files")
    p.add_argument("--gitignore", action="store_true", help="Also honour ROOT/.gitignore")
    p.add_argument(
        "--no-default-excludes",
        dest="use_defaults",
        action="store_false",
        help="Do not apply the built-in exclude patterns",
    )
    p.add_argument("--follow-symlinks", action="store_true", help="Descend into symlinked directories")
    p.add_argument(
        "--skip-unreadable",
        action="store_true",
        help="Skip files that cannot be read instead of failing",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging (also: VERBOSE=1)")
    ns = p.parse_args(argv)

    expected = (1, 2) if ns.list_files else (2, 3)
    if len(ns.paths) not in expected:
        p.error(f"expected {' or '.join(map(str, expected))} paths, got {len(ns.paths)}")

    ns.root = Path(ns.paths[0])
    if ns.list_files:
        ns.out = None
        rest = ns.paths[1:]
    else:
        ns.out = Path(ns.paths[1])
        rest = ns.paths[2:]
    ns.ignore_file = Path(rest[0]) if rest else None
    return ns


def _self_exclusion(root: Path, out_path: Path) -> List[str]:
    try:
        rel = out_path.resolve().relative_to(root.resolve())
    except (ValueError, OSError):
        return []
    return ["/" + escape_glob(rel.as_posix())]


def _print_paths(paths: List[str]) -> None:
    # Filenames that are not valid UTF-8 go out as their original bytes.
    buffer = getattr(sys.stdout, "buffer", None)
    if buffer is None:
        for rel in paths:
            print(rel)
        return
    sys.stdout.flush()
    for rel in paths:
        buffer.write(os.fsencode(rel) + b"\n")
    buffer.flush()


def main(argv: Optional[List[str]] = None) -> int:
    colorama.just_fix_windows_console()
    try:
        ns = _parse_args(argv)
        reporter = Reporter(verbose=ns.verbose or verbose_from_env(os.environ))
        root = check_root(ns.root)

        extra = _self_exclusion(root, ns.out) if ns.out is not None else []
        rules = load_rules(
            ns.ignore_file,
            use_defaults=ns.use_defaults,
            gitignore_root=root if ns.gitignore else None,
            extra_patterns=extra,
            reporter=reporter,
        )
        selection = select_files(
            root,
            rules=rules,
            reporter=reporter,
            follow_symlinks=ns.follow_symlinks,
        )

        if ns.out is None:
            _print_paths(selection)
            return 0

        write_summary(
            root,
            ns.out,
            selection,
            reporter=reporter,
            skip_unreadable=ns.skip_unreadable,
        )
        return 0

    except SummariseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
