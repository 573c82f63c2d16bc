"""Shared pytest fixtures for board-sync tests."""

from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from board_sync.config import Config

load_dotenv()


SAMPLE_ORG = """\
#+PROPERTY: board-id B1
#+PROPERTY: TODO L1
#+PROPERTY: DONE L2
#+TODO: TODO | DONE
* TODO Ship it                                         :a:b:
DEADLINE: <2026-10-20 Tue 14:00>
:PROPERTIES:
:orgtrello-id: 42
:orgtrello-users: m1,m2
:END:
  Description text.
  - [-] Checklist :PROPERTIES: {"orgtrello-id":"c1"}
    - [X] Item :PROPERTIES: {"orgtrello-id":"i1"}
    - [ ] Open item
* DONE Second card
"""


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live board API",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live board API"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        api_key="test-key",
        api_token="test-token",
        api_url="https://board.example.com/1",
        insecure=False,
    )


@pytest.fixture
def mock_board_client(mock_config):
    """Create a mock BoardClient instance for testing."""
    from board_sync.core.client import BoardClient

    client = MagicMock(spec=BoardClient)
    client.config = mock_config
    return client


@pytest.fixture
def sample_text():
    return SAMPLE_ORG


@pytest.fixture
def org_file(tmp_path):
    """Write the sample outline to disk and return its path."""
    path = tmp_path / "board.org"
    path.write_text(SAMPLE_ORG, encoding="utf-8")
    return path
