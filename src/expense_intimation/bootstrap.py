from __future__ import annotations

from sqlalchemy import select

# isort: off
import expense_intimation.models  # noqa: F401
# isort: on

from expense_intimation.core.config import settings
from expense_intimation.core.db import SessionLocal, engine
from expense_intimation.core.logging import get_logger, log_event
from expense_intimation.core.models import Base
from expense_intimation.core.security import hash_password
from expense_intimation.modules.identity.models import User, UserRole

logger = get_logger(__name__)


def bootstrap() -> None:
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    if not settings.init_admin_email or not settings.init_admin_password:
        return

    # Comma-separated list of admin emails
    admin_emails = [e.strip() for e in settings.init_admin_email.split(",") if e.strip()]
    if not admin_emails:
        return

    with SessionLocal() as session:
        for email in admin_emails:
            existing = session.scalar(select(User).where(User.email == email))
            if existing:
                if existing.role != UserRole.ADMIN:
                    existing.role = UserRole.ADMIN
                    session.add(existing)
                    log_event(logger, "bootstrap.admin.promoted", email=email)
                continue
            session.add(
                User(
                    email=email,
                    full_name="Admin",
                    password_hash=hash_password(settings.init_admin_password),
                    role=UserRole.ADMIN,
                    is_active=True,
                )
            )
            log_event(logger, "bootstrap.admin.created", email=email)
        session.commit()
