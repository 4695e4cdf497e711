from __future__ import annotations

import pathlib
import sys

import pytest

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from safari_mcp.catalog.loader import CatalogLoader  # noqa: E402
from tests.helpers.fakes import RecordingSleep  # noqa: E402


@pytest.fixture(scope="session")
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture(scope="session")
def catalog() -> CatalogLoader:
    return CatalogLoader.load_default()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
