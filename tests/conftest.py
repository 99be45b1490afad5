from pathlib import Path
from typing import Dict, Union

import pytest


def _build(root: Path, files: Dict[str, Union[str, bytes]]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def make_tree(tmp_path):
    """Returns a builder: make_tree({"a/b.txt": "..."}) -> project root."""
    root = tmp_path / "project"
    root.mkdir()

    def _make(files):
        return _build(root, files)

    return _make


@pytest.fixture
def custom_exclude(tmp_path, make_tree):
    """The ``custom_exclude`` fixture: two kept files, one ``*.log`` excluded."""
    root = make_tree({
        "file_to_include.txt": "Content of file to include.\n",
        "subdir/another_to_include.md": "Markdown content.\n",
        "file_to_exclude.log": "Log content.\n",
    })
    ignores = tmp_path / "custom_ignores.txt"
    ignores.write_text("*.log\n", encoding="utf-8")
    return root, ignores
