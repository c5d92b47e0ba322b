"""Pytest configuration and fixtures for scenesync tests.

This module provides pytest hooks and fixtures that apply across all tests.
"""

import gc
import logging

import pytest

console_logger = logging.getLogger(__name__)


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_teardown(item, nextitem):
    """Force garbage collection after each test to clean up Drake C++ objects."""
    gc.collect()
    console_logger.debug(f"Garbage collection completed after test: {item.nodeid}")


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session, exitstatus):  # noqa: ARG001
    """Force final garbage collection after all tests complete.

    Drake objects are released before pytest exits, which keeps Drake's leak
    detector quiet at interpreter shutdown.
    """
    del session, exitstatus  # Unused but required by hookspec.
    gc.collect()
    console_logger.debug("Final garbage collection completed after test session")
