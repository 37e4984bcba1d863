import asyncio
import inspect
import os
import sys
from pathlib import Path

os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("SERVER_DOMAIN", "localhost")
os.environ.setdefault("SERVER_URL", "http://localhost:8050")
os.environ.setdefault("CLIENT_URL", "http://localhost:3000")
os.environ.setdefault("OAUTH_YANDEX_CLIENT_ID", "yandex-client")
os.environ.setdefault("OAUTH_YANDEX_CLIENT_SECRET", "yandex-secret")
os.environ.setdefault("OAUTH_VK_CLIENT_ID", "vk-client")
os.environ.setdefault("OAUTH_VK_CLIENT_SECRET", "vk-secret")
# OAuth state stays in process during tests
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from storefront.service.runtime import reset_runtime_for_tests  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
