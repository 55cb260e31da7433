"""Global pytest configuration."""

from __future__ import annotations

import asyncio
import inspect
import os

import pytest

# Keep a developer's shell overrides out of config tests.
for _name in [key for key in os.environ if key.startswith("LOGINPROBE_")]:
    os.environ.pop(_name, None)


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    """Run coroutine tests on a fresh event loop per test."""
    if not inspect.iscoroutinefunction(pyfuncitem.obj):
        return None
    testargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(pyfuncitem.obj(**testargs))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark async tests run by the local loop hook")
