"""Pytest configuration.

Ensures local packages can be imported consistently during test collection.
"""

import sys
from pathlib import Path

import pytest


def _prepend_sys_path(path: Path) -> None:
    resolved = str(path.resolve())
    if resolved not in sys.path:
        sys.path.insert(0, resolved)


REPO_ROOT = Path(__file__).resolve().parent

# Allow importing `cpq_connector` without installing the project.
_prepend_sys_path(REPO_ROOT / "src")


@pytest.fixture
def cpq_env_vars(monkeypatch):
    """Common environment variables for CPQ client tests."""
    values = {
        "CPQ_ACCESS_KEY": "AK",
        "CPQ_PUBLIC_KEY": "PK",
        "CPQ_PRIVATE_KEY": "PV",
        "CPQ_BASE_URL": "https://cpq.test",
        "CPQ_DEBUG": "",
        "CPQ_DEBUG_SHOW_AUTH_TOKEN": "",
        "CPQ_HTTP_TIMEOUT_SECONDS": "5",
        "CPQ_MAX_PAGES": "",
    }
    for k, v in values.items():
        monkeypatch.setenv(k, v)
    return values
