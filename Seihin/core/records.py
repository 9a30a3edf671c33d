"""Local mutation and read API for expenses and week budgets.

Every change made on this device goes through here. Mutations stamp ``updatedAt`` with
the current time, write through :mod:`Seihin.core.database` and emit
:attr:`~Seihin.core.signals.Signals.localDataChanged` with the collection name, which is
what arms the debounced sync trigger.

Deletions are soft: the record is kept as a tombstone until a sync round has uploaded it.
"""
import dataclasses
import datetime
import logging
import uuid
from typing import List, Optional

from . import database
from . import models
from .signals import signals
from ..settings import lib

EXPENSES: str = 'expenses'
WEEK_BUDGETS: str = 'week_budgets'
DEFAULT_WEEK_BUDGET: str = 'default_week_budget'


def _verify_date(value: str, name: str = 'date') -> None:
    if not isinstance(value, str):
        raise TypeError(f'{name} must be a string, got {type(value).__name__}.')
    if not models.is_iso_date(value):
        raise ValueError(f'{name} must be a YYYY-MM-DD date, got {value!r}.')


def _verify_amount(value: int, name: str = 'amount') -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f'{name} must be an integer, got {type(value).__name__}.')
    if value < 0:
        raise ValueError(f'{name} must not be negative, got {value}.')


def _verify_category(value: str) -> None:
    if value not in models.CATEGORY_IDS:
        raise ValueError(f'Unknown category {value!r}. Expected one of {models.CATEGORY_IDS}.')


def _verify_week_start(value: str) -> None:
    _verify_date(value, name='week_start')
    if datetime.date.fromisoformat(value).weekday() != 0:
        raise ValueError(f'week_start must be a Monday, got {value}.')


def add_expense(
        date: str,
        amount: int,
        memo: str = '',
        category: Optional[str] = None,
        is_special: bool = False
) -> models.ExpenseRecord:
    """Create a new expense.

    Args:
        date: The day of the expense, ``YYYY-MM-DD``.
        amount: Amount in the minor unit of the ledger currency.
        memo: Optional free text.
        category: Category id. Defaults to the ``ledger.default_category`` setting.
        is_special: Special expenses are excluded from weekly totals.

    Returns:
        models.ExpenseRecord: The stored record.

    Raises:
        TypeError: If an argument has the wrong type.
        ValueError: If an argument is out of range.
    """
    _verify_date(date)
    _verify_amount(amount)
    if category is None:
        category = lib.settings.get_section('ledger')['default_category']
    _verify_category(category)

    now = models.now_str()
    record = models.ExpenseRecord(
        id=str(uuid.uuid4()),
        date=date,
        amount=amount,
        memo=memo,
        category=category,
        created_at=now,
        updated_at=now,
        is_special=bool(is_special),
    )
    database.database.put_expense(record)
    logging.debug(f'Added expense {record.id} on {date}: {amount} ({category})')
    signals.localDataChanged.emit(EXPENSES)
    return record


def _get_live_expense(expense_id: str) -> models.ExpenseRecord:
    record = database.database.get_expense(expense_id)
    if record is None or record.deleted:
        raise ValueError(f'Expense "{expense_id}" not found.')
    return record


def update_expense(
        expense_id: str,
        amount: int,
        memo: str,
        category: str,
        is_special: bool = False
) -> models.ExpenseRecord:
    """Edit an existing expense. The id and date never change."""
    _verify_amount(amount)
    _verify_category(category)

    record = dataclasses.replace(
        _get_live_expense(expense_id),
        amount=amount,
        memo=memo,
        category=category,
        is_special=bool(is_special),
        updated_at=models.now_str(),
    )
    database.database.put_expense(record)
    logging.debug(f'Updated expense {expense_id}')
    signals.localDataChanged.emit(EXPENSES)
    return record


def delete_expense(expense_id: str) -> models.ExpenseRecord:
    """Soft-delete an expense, leaving a tombstone to be synchronized."""
    record = dataclasses.replace(
        _get_live_expense(expense_id),
        deleted=True,
        updated_at=models.now_str(),
    )
    database.database.put_expense(record)
    logging.debug(f'Deleted expense {expense_id}')
    signals.localDataChanged.emit(EXPENSES)
    return record


def get_expenses_by_date(date: str) -> List[models.ExpenseRecord]:
    _verify_date(date)
    return database.database.get_expenses(start=date, end=date)


def get_expenses_by_range(start: str, end: str) -> List[models.ExpenseRecord]:
    """Return live expenses between ``start`` and ``end``, both inclusive."""
    _verify_date(start, name='start')
    _verify_date(end, name='end')
    if start > end:
        raise ValueError(f'start ({start}) is after end ({end}).')
    return database.database.get_expenses(start=start, end=end)


def get_expenses_by_month(year: int, month: int) -> List[models.ExpenseRecord]:
    if not 1 <= month <= 12:
        raise ValueError(f'Invalid month: {month}')
    first = datetime.date(year, month, 1)
    if month == 12:
        last = datetime.date(year, 12, 31)
    else:
        last = datetime.date(year, month + 1, 1) - datetime.timedelta(days=1)
    return database.database.get_expenses(start=first.isoformat(), end=last.isoformat())


def set_week_budget(week_start: str, budget: int) -> models.WeekBudgetRecord:
    """Set the budget override for one week.

    Args:
        week_start: The Monday of the week, ``YYYY-MM-DD``.
        budget: Budget in minor units.

    Returns:
        models.WeekBudgetRecord: The stored override.
    """
    _verify_week_start(week_start)
    _verify_amount(budget, name='budget')

    record = models.WeekBudgetRecord(week_start=week_start, budget=budget, updated_at=models.now_str())
    database.database.put_week_budget(record)
    logging.debug(f'Set week budget for {week_start}: {budget}')
    signals.localDataChanged.emit(WEEK_BUDGETS)
    return record


def delete_week_budget(week_start: str) -> Optional[models.WeekBudgetRecord]:
    """Remove a week override so the week falls back to the default budget.

    Returns:
        Optional[models.WeekBudgetRecord]: The tombstone, or None if there was no override.
    """
    _verify_week_start(week_start)
    existing = database.database.get_week_budget(week_start)
    if existing is None or existing.deleted:
        return None

    record = dataclasses.replace(existing, deleted=True, updated_at=models.now_str())
    database.database.put_week_budget(record)
    logging.debug(f'Deleted week budget for {week_start}')
    signals.localDataChanged.emit(WEEK_BUDGETS)
    return record


def set_default_week_budget(budget: int) -> models.DefaultWeekBudget:
    _verify_amount(budget, name='budget')
    value = models.DefaultWeekBudget(budget=budget, updated_at=models.now_str())
    database.database.put_default_week_budget(value)
    logging.debug(f'Set default week budget: {budget}')
    signals.localDataChanged.emit(DEFAULT_WEEK_BUDGET)
    return value


def get_default_week_budget() -> Optional[int]:
    value = database.database.get_default_week_budget()
    return value.budget if value else None


def get_week_budget(week_start: str) -> Optional[int]:
    """Resolve the budget of a week: its live override, else the default, else None."""
    _verify_week_start(week_start)
    override = database.database.get_week_budget(week_start)
    if override is not None and not override.deleted:
        return override.budget
    return get_default_week_budget()
