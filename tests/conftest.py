"""Global pytest configuration."""

from __future__ import annotations

import asyncio
import inspect
import os

import pytest

# Keep a local .env from turning on escalation during tests.
os.environ.setdefault("ESCALATION_ENABLED", "false")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: run the coroutine test on a fresh event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    """Run coroutine tests to completion, each on its own loop."""
    if not inspect.iscoroutinefunction(pyfuncitem.obj):
        return None

    kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(pyfuncitem.obj(**kwargs))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty detection metrics."""
    from phishlens.analyzer.metrics import metrics

    metrics.reset()
    yield
    metrics.reset()
