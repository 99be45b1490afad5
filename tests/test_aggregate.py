"""
Unit Tests — Aggregation
========================
Document layout, byte fidelity, unreadable-file policy and atomic
replacement of the destination file.
"""
import io
import os

import pytest

from summarise.core import (
    FileReadError,
    OutputError,
    Reporter,
    aggregate,
    select_files,
    write_summary,
)


# ===================================================================
# aggregate
# ===================================================================
class TestAggregate:

    def test_document_layout(self, make_tree):
        root = make_tree({"a.txt": "alpha\n", "b/c.txt": "gamma"})
        out = io.StringIO()

        count = aggregate(root, ["a.txt", "b/c.txt"], out)

        assert count == 2
        assert out.getvalue() == (
            "=== FILE: a.txt ===\n"
            "alpha\n"
            "\n"
            "=== FILE: b/c.txt ===\n"
            "gamma\n"
            "\n"
        )

    def test_empty_file(self, make_tree):
        root = make_tree({"e.txt": ""})
        out = io.StringIO()
        aggregate(root, ["e.txt"], out)
        assert out.getvalue() == "=== FILE: e.txt ===\n\n"

    def test_follows_selection_order(self, make_tree):
        root = make_tree({"a.txt": "a\n", "b.txt": "b\n"})
        out = io.StringIO()
        aggregate(root, ["b.txt", "a.txt"], out)
        text = out.getvalue()
        assert text.index("=== FILE: b.txt ===") < text.index("=== FILE: a.txt ===")

    def test_empty_selection(self, make_tree):
        root = make_tree({})
        out = io.StringIO()
        assert aggregate(root, [], out) == 0
        assert out.getvalue() == ""

    def test_missing_file_raises(self, make_tree):
        root = make_tree({"a.txt": "a\n"})
        with pytest.raises(FileReadError) as exc_info:
            aggregate(root, ["a.txt", "gone.txt"], io.StringIO())
        assert exc_info.value.path == "gone.txt"
        assert "gone.txt" in str(exc_info.value)

    def test_skip_unreadable(self, make_tree):
        root = make_tree({"a.txt": "a\n"})
        out = io.StringIO()
        log = io.StringIO()

        count = aggregate(
            root,
            ["gone.txt", "a.txt"],
            out,
            reporter=Reporter(verbose=True, stream=log),
            skip_unreadable=True,
        )

        assert count == 1
        assert "gone.txt" not in out.getvalue()
        assert "LOG: Skipping unreadable file gone.txt" in log.getvalue()


# ===================================================================
# write_summary
# ===================================================================
class TestWriteSummary:

    def test_custom_exclude_document(self, custom_exclude, tmp_path):
        root, ignores = custom_exclude
        out_path = tmp_path / "out" / "summary_output.txt"

        count = write_summary(root, out_path, select_files(root, ignores))

        summary = out_path.read_text(encoding="utf-8")
        assert count == 2
        assert "=== FILE: file_to_include.txt ===" in summary
        assert "Content of file to include." in summary
        assert "=== FILE: subdir/another_to_include.md ===" in summary
        assert "Markdown content." in summary
        assert "=== FILE: file_to_exclude.log ===" not in summary

    def test_exact_bytes(self, make_tree, tmp_path):
        raw = b"line1\r\nline2\r\n\xff\xfe not utf-8\n"
        root = make_tree({"data.bin": raw})
        out_path = tmp_path / "summary.txt"

        write_summary(root, out_path, ["data.bin"])

        assert out_path.read_bytes() == b"=== FILE: data.bin ===\n" + raw + b"\n"

    def test_failure_leaves_existing_destination(self, make_tree, tmp_path):
        root = make_tree({"a.txt": "a\n"})
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        out_path = out_dir / "summary.txt"
        out_path.write_text("previous run\n", encoding="utf-8")

        with pytest.raises(FileReadError):
            write_summary(root, out_path, ["a.txt", "gone.txt"])

        assert out_path.read_text(encoding="utf-8") == "previous run\n"
        assert [p.name for p in out_dir.iterdir()] == ["summary.txt"]

    def test_failure_creates_no_destination(self, make_tree, tmp_path):
        root = make_tree({})
        out_path = tmp_path / "summary.txt"
        with pytest.raises(FileReadError):
            write_summary(root, out_path, ["gone.txt"])
        assert not out_path.exists()

    def test_creates_parent_directories(self, make_tree, tmp_path):
        root = make_tree({"a.txt": "a\n"})
        out_path = tmp_path / "deep" / "er" / "summary.txt"
        write_summary(root, out_path, ["a.txt"])
        assert out_path.read_text(encoding="utf-8") == "=== FILE: a.txt ===\na\n\n"

    def test_write_failure_raises_output_error(self, make_tree, tmp_path):
        root = make_tree({"a.txt": "a\n"})
        out_dir = tmp_path / "out"
        (out_dir / "summary.txt").mkdir(parents=True)

        with pytest.raises(OutputError) as exc_info:
            write_summary(root, out_dir / "summary.txt", ["a.txt"])

        assert "summary.txt" in str(exc_info.value)
        assert [p.name for p in out_dir.iterdir()] == ["summary.txt"]
        assert (out_dir / "summary.txt").is_dir()

    def test_undecodable_name_in_header(self, make_tree, tmp_path):
        root = make_tree({})
        name = os.fsdecode(b"bad\xff.txt")
        try:
            (root / name).write_bytes(b"x\n")
        except (OSError, UnicodeError):
            pytest.skip("filesystem rejects non-UTF-8 names")
        out_path = tmp_path / "summary.txt"

        write_summary(root, out_path, select_files(root))

        assert out_path.read_bytes() == b"=== FILE: bad\xff.txt ===\nx\n\n"
