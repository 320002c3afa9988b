"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

from spendlens.modules.expenses.models import Expense, ExpenseLineItem  # noqa: F401
from spendlens.modules.insights.models import InsightsState  # noqa: F401
