"""Pytest configuration helpers for asset_tiles tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Use Qt's headless platform plugin unless a display platform is configured.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

try:  # pragma: no cover - dependency availability varies between environments
    from PySide6.QtWidgets import QApplication
except ImportError:  # pragma: no cover - used when Qt is unavailable
    QApplication = None  # type: ignore[assignment]

# Ensure the source directory is importable without requiring an editable install.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def reset_tile_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Ensure each test writes tiles into its own temporary cache."""

    from asset_tiles.config import CACHE_ROOT_ENV_VAR, configure

    monkeypatch.setenv(CACHE_ROOT_ENV_VAR, str(tmp_path / "cache"))
    configure()
    yield
    monkeypatch.undo()
    configure()


@pytest.fixture(scope="session")
def qapp():
    """Provide a ``QApplication`` instance for UI-oriented tests."""

    if QApplication is None:
        pytest.skip("PySide6 is unavailable in this environment")

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app
