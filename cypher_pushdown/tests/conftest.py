# Copyright 2020-present Kensho Technologies, LLC.
from funcy import retry
import pytest

from .test_data_tools.data_tool import generate_falkordb_integration_data
from .test_data_tools.falkordb_graph import get_test_falkordb_graph


GRAPH_NAME = "people"  # Name for integration test database


# Pytest fixtures depend on name redefinitions to work,
# so this check generates tons of false-positives here.
# pylint: disable=redefined-outer-name


@pytest.fixture(scope="session")
def init_integration_falkordb_graph():
    """Return a client for an initialized graph, with all test data imported."""
    return _init_falkordb_graph(generate_falkordb_integration_data)


# retry is a decorator that attempts to call the decorated function repeatedly, and it takes a
# parameter "call". Call is the function being decorated, so we don't need to specify which
# parameters the retry decorator takes. So, we can disable pylint's warning about
# missing parameters here.
@retry(20, timeout=1)  # pylint: disable=no-value-for-parameter
def _init_falkordb_graph(generate_data_func):
    """Set up a graph and return a client that can query it."""
    return get_test_falkordb_graph(GRAPH_NAME, generate_data_func)


@pytest.fixture(scope="class")
def integration_falkordb_graph(request, init_integration_falkordb_graph):
    """Get a client for an initialized graph, with all test data imported."""
    request.cls.falkordb_graph = init_integration_falkordb_graph


def pytest_addoption(parser):
    """Add command line options to py.test to allow for slow tests to be skipped."""
    parser.addoption("--skip-slow", action="store_true", default=False, help="Skip slow tests.")


def pytest_configure(config):
    """Initialize the pytest configuration. Executed prior to any tests."""
    config.addinivalue_line(
        # Define the "slow" pytest mark, to avoid PytestUnknownMarkWarning being generated.
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"' or --skip-slow)",
    )


def pytest_collection_modifyitems(config, items):
    """Modify py.test behavior based on command line options."""
    if not config.getoption("--skip-slow"):
        return

    # skip tests marked with the @pytest.mark.slow decorator
    skip_slow = pytest.mark.skip(reason="--skip-slow command line argument supplied")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
