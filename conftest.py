"""Root pytest configuration: executes the Python blocks in docs/ with sybil."""

from __future__ import annotations

import os
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

import numpy as np
from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser

_DOCS_DIR = Path(__file__).parent / "docs"


def _enter_scratch_dir(namespace: dict[str, Any]) -> None:
    """Run each document from its own scratch directory with numpy preloaded."""
    scratch = TemporaryDirectory()
    namespace["_scratch"] = scratch
    namespace["_cwd"] = Path.cwd()
    namespace["np"] = np
    os.chdir(scratch.name)


def _leave_scratch_dir(namespace: dict[str, Any]) -> None:
    os.chdir(namespace.pop("_cwd"))
    namespace.pop("_scratch").cleanup()


pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    path=str(_DOCS_DIR),
    pattern="**/*.md",
    setup=_enter_scratch_dir,
    teardown=_leave_scratch_dir,
).pytest()
