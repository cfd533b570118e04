import os
import sys
from pathlib import Path

import pytest

# Make the repository root importable without installing the package.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep a developer's ``.env`` and REFERENCE_ENGINE_* variables out of tests."""

    monkeypatch.chdir(tmp_path)
    for name in list(os.environ):
        if name.startswith("REFERENCE_ENGINE_"):
            monkeypatch.delenv(name, raising=False)
