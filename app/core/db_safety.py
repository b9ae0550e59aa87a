from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_NAME_RE = re.compile(r"test", re.IGNORECASE)
ALLOWED_LOCAL_HOSTS = {
    "localhost",
    "127.0.0.1",
    "::1",
    "postgres",
    "episode_ledger_postgres",
}


@dataclass(frozen=True, slots=True)
class TestDbSafetyResult:
    is_safe: bool
    reason: str
    backend: str
    database_name: str
    host: str


def assess_test_db_safety(database_url: str) -> TestDbSafetyResult:
    parsed = make_url(database_url)
    backend = parsed.get_backend_name()
    db_name = (parsed.database or "").strip()
    host = (parsed.host or "").strip().lower()

    def _result(is_safe: bool, reason: str) -> TestDbSafetyResult:
        return TestDbSafetyResult(
            is_safe=is_safe,
            reason=reason,
            backend=backend,
            database_name=db_name,
            host=host,
        )

    if backend not in {"postgresql", "sqlite"}:
        return _result(False, f"Unsupported backend '{backend}'.")

    if not db_name or db_name == ":memory:":
        if backend == "sqlite":
            return _result(True, "ok")
        return _result(False, "Database name is empty.")

    if TEST_DB_NAME_RE.search(db_name) is None:
        return _result(False, "Database name must clearly indicate a test database (contain 'test').")

    if backend == "postgresql" and host not in ALLOWED_LOCAL_HOSTS:
        return _result(False, "Host is not in allowed local test hosts.")

    return _result(True, "ok")


def assert_safe_test_db(database_url: str) -> None:
    result = assess_test_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to drop and recreate the schema of a non-test database.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: backend='{result.backend}' name='{result.database_name}' host='{result.host}'\n"
        "Required: a local PostgreSQL test DB (e.g. 'episode_ledger_test') or a SQLite file named *test*."
    )
