"""
Pytest fixtures and test configuration for Cairn tests.
"""

import logging

import pytest

from cairn.config import get_config
from cairn.core import Cairn
from cairn.permissions import allow_all
from cairn.storage import SQLiteStorage


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point CAIRN_DATA_DIR at a temp directory so logs and the default db stay out of $HOME."""
    home = tmp_path / "cairn-home"
    monkeypatch.setenv("CAIRN_DATA_DIR", str(home))
    get_config.cache_clear()
    yield home
    get_config.cache_clear()
    # setup_cairn_logging may have attached a file handler in this temp dir
    cairn_logger = logging.getLogger("cairn")
    for handler in list(cairn_logger.handlers):
        handler.close()
        cairn_logger.removeHandler(handler)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
def storage(db_path):
    """A fresh SQLiteStorage on a temp database."""
    s = SQLiteStorage(db_path=db_path)
    yield s
    s.close()


@pytest.fixture
def confirmations():
    """Records every confirmation request; answers with ``answer`` (default yes)."""

    class Recorder:
        def __init__(self):
            self.calls = []
            self.answer = True

        def __call__(self, action_kind, description):
            self.calls.append((action_kind, description))
            return self.answer

    return Recorder()


@pytest.fixture
def cairn(storage, confirmations):
    """Cairn facade whose confirmer approves by default and records calls."""
    return Cairn(storage=storage, confirm=confirmations)


@pytest.fixture
def trusting_cairn(storage):
    return Cairn(storage=storage, confirm=allow_all)


@pytest.fixture
def project(cairn):
    """An active-status project named 'alpha' (not entered)."""
    outcome = cairn.create_project("alpha", description="Alpha project", stack=["python"])
    assert outcome.ok, outcome.message
    return outcome.value


@pytest.fixture
def save(cairn):
    """Save a memory through the facade and return it, failing the test on error."""

    def _save(memory_type="note", title="A note", content="body", **kwargs):
        outcome = cairn.save_memory(memory_type, title, content, **kwargs)
        assert outcome.ok, outcome.message
        return outcome.value

    return _save
