from __future__ import annotations

import os
import tempfile
from pathlib import Path

TEST_DATABASE_PATH = Path(tempfile.gettempdir()) / f"episode_ledger_test_{os.getpid()}.db"

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DATABASE_PATH}"
os.environ["INTERNAL_API_TOKEN"] = "test-internal-token"
os.environ["INTERNAL_API_ALLOWLIST"] = "127.0.0.1/32"
os.environ["INTERNAL_API_TRUSTED_PROXIES"] = ""
os.environ["GOOGLE_PLAY_CREDENTIALS"] = ""
os.environ["APPLE_SHARED_SECRET"] = ""
os.environ["RECEIPT_SIMULATION_ENABLED"] = "true"

import pytest  # noqa: E402

from app.core.db_safety import assert_safe_test_db  # noqa: E402
from app.db.session import create_schema, drop_schema, engine  # noqa: E402


@pytest.fixture
async def ledger_db() -> None:
    assert_safe_test_db(str(engine.url))
    # Pooled aiosqlite connections are bound to the previous test's event loop.
    await engine.dispose()
    await drop_schema()
    await create_schema()

    yield

    await engine.dispose()


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ANN001
    TEST_DATABASE_PATH.unlink(missing_ok=True)
