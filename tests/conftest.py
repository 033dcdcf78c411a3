from __future__ import annotations

import os

import pytest

# Set env before any expense_intimation imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.expense_intimation_test.db")
os.environ.setdefault("SIDE_EFFECT_DELAY_MS", "0")
os.environ.setdefault("WEBHOOK_RETRY_BACKOFF_SECONDS", "0")


@pytest.fixture(autouse=True)
def _reset_db() -> None:
    import expense_intimation.models  # noqa: F401
    from expense_intimation.core.db import engine
    from expense_intimation.core.models import Base

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture
def users():
    from expense_intimation.core.db import SessionLocal
    from expense_intimation.modules.identity.models import UserRole
    from expense_intimation.modules.identity.service import create_user

    with SessionLocal() as session:
        created = {
            role: create_user(
                session,
                email=f"{role.value}@example.com",
                password="pw",
                role=role,
                full_name=role.value.replace("_", " ").title(),
            )
            for role in UserRole
        }
        ids = {role: u.id for role, u in created.items()}
    return ids
