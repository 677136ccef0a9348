import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Selects the config environment before any domain module is imported.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("JOB_SCHEDULER", "memory")
    os.environ.setdefault("LOCK_BACKEND", "memory")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def reset_shared_infrastructure():
    """Give every test a fresh clock, lock backend and job scheduler."""
    from shared.clock import reset_clock
    from shared.jobs import reset_scheduler
    from shared.locks import reset_locks

    reset_clock()
    reset_locks()
    reset_scheduler()

    yield

    reset_clock()
    reset_locks()
    reset_scheduler()
