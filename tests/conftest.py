import os
from urllib.parse import urlparse

import pytest


def _database_settings() -> dict:
    """PostgreSQL from DATABASE_URL when given, otherwise in-memory SQLite."""
    u = urlparse(os.environ.get("DATABASE_URL", ""))
    if u.scheme not in {"postgres", "postgresql"}:
        return {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}

    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": (u.path or "").lstrip("/"),
        "USER": u.username or "",
        "PASSWORD": u.password or "",
        "HOST": u.hostname or "localhost",
        "PORT": str(u.port or 5432),
        "CONN_MAX_AGE": 0,
    }


@pytest.fixture(scope="session")
def django_vendor() -> str:
    """Configure Django and migrate stock_safe (once per test run); return the DB vendor."""
    from django.conf import settings

    if not settings.configured:
        settings.configure(
            SECRET_KEY="test",
            INSTALLED_APPS=["stock_safe"],
            DATABASES={"default": _database_settings()},
            TIME_ZONE="UTC",
            USE_TZ=True,
        )

        import django
        from django.core.management import call_command

        django.setup()
        call_command("migrate", "stock_safe", verbosity=0)

    from django.db import connection

    return connection.vendor
