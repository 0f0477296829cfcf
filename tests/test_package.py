"""
Package-level checks that apply to every imagepipe module.
"""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest

import imagepipe

_MODULES = sorted(Path(imagepipe.__file__).parent.rglob("*.py"))


@pytest.mark.parametrize("path", _MODULES, ids=lambda p: p.name)
def test_module_compiles_without_warnings(path):
    source = path.read_text(encoding="utf-8")
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, str(path), "exec")
