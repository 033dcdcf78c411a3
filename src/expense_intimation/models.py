"""
Alembic model import hook.

Importing this module registers every SQLAlchemy model on Base.metadata.
"""

from __future__ import annotations

# User first: every other model references it
from expense_intimation.modules.identity.models import User  # noqa: F401

from expense_intimation.modules.workflow.models import ApprovalRecord  # noqa: F401
from expense_intimation.modules.expenses.models import (  # noqa: F401
    Expense,
    ExpenseLineItem,
    PaymentConfirmation,
)
from expense_intimation.modules.intimations.models import Intimation  # noqa: F401
from expense_intimation.modules.notifications.models import Notification  # noqa: F401
