from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import harmonic_engine

PACKAGE_DIR = Path(harmonic_engine.__file__).resolve().parent
NUMPY_MODULES = sorted(
    path for path in PACKAGE_DIR.rglob("*.py") if "import numpy as np" in path.read_text(encoding="utf-8")
)


def test_numpy_modules_are_discovered() -> None:
    names = {path.relative_to(PACKAGE_DIR).as_posix() for path in NUMPY_MODULES}
    assert {"codec/qpsk.py", "codec/transform.py", "cqe/convolution.py", "trie/chunks.py"} <= names


@pytest.mark.parametrize("path", NUMPY_MODULES, ids=lambda path: path.relative_to(PACKAGE_DIR).as_posix())
def test_numpy_import_is_guarded(path: Path) -> None:
    source = path.read_text(encoding="utf-8")
    guard = source.find('importlib.util.find_spec("numpy") is None')
    assert guard != -1
    assert guard < source.index("import numpy as np")
    assert "raise ModuleNotFoundError(" in source[guard : source.index("import numpy as np")]


def test_public_api_is_exported() -> None:
    for name in harmonic_engine.__all__:
        assert hasattr(harmonic_engine, name)
