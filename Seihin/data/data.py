"""Summaries of the local ledger.

This module loads live expenses from the local database into pandas DataFrames and
derives the figures the ledger views display: weekly totals against the resolved week
budget, and per-category totals.

Special expenses (``is_special``) are one-off purchases. They are listed, but never count
against a week budget.
"""
import datetime
import logging
from typing import Any, Dict, Optional, Union

import pandas as pd

from ..core import database
from ..core import models
from ..core import records
from ..settings import lib
from ..settings import locale

EXPENSE_COLUMNS = ['id', 'date', 'amount', 'memo', 'category', 'is_special', 'created_at', 'updated_at']


def week_start(date: Union[str, datetime.date]) -> str:
    """Return the Monday of the week containing ``date`` as ``YYYY-MM-DD``."""
    if isinstance(date, str):
        date = datetime.date.fromisoformat(date)
    elif isinstance(date, datetime.datetime):
        date = date.date()
    return (date - datetime.timedelta(days=date.weekday())).isoformat()


def expenses_frame(start: Optional[str] = None, end: Optional[str] = None) -> pd.DataFrame:
    """Load live expenses between ``start`` and ``end`` (inclusive) into a DataFrame.

    Args:
        start: First date, ``YYYY-MM-DD``. Open if None.
        end: Last date, ``YYYY-MM-DD``. Open if None.

    Returns:
        pd.DataFrame: One row per expense with :data:`EXPENSE_COLUMNS`. The ``date``
        column is parsed to datetime.
    """
    rows = database.database.get_expenses(start=start, end=end)
    if not rows:
        df = pd.DataFrame(columns=EXPENSE_COLUMNS)
        df['date'] = pd.to_datetime(df['date'])
        df['amount'] = df['amount'].astype('int64')
        df['is_special'] = df['is_special'].astype(bool)
        return df

    df = pd.DataFrame(
        [{c: getattr(r, c) for c in EXPENSE_COLUMNS} for r in rows],
        columns=EXPENSE_COLUMNS
    )
    df['date'] = pd.to_datetime(df['date'], format=models.DATE_FORMAT)
    df['amount'] = df['amount'].astype('int64')
    df['is_special'] = df['is_special'].astype(bool)
    return df


def week_summary(week_start_date: str) -> Dict[str, Any]:
    """Summarize one week against its budget.

    Args:
        week_start_date: The Monday of the week.

    Returns:
        dict: With the keys

        - ``week_start`` / ``week_end``: first and last day of the week.
        - ``total``: spending that counts against the budget.
        - ``special_total``: spending on special expenses.
        - ``daily``: pd.Series of budgeted spending per day, Monday to Sunday.
        - ``budget``: resolved budget, or None when neither an override nor a default is set.
        - ``remaining``: budget minus total, or None without a budget.
        - ``over_budget``: True if total exceeds the budget.
    """
    first = datetime.date.fromisoformat(week_start_date)
    if first.weekday() != 0:
        raise ValueError(f'{week_start_date} is not a Monday.')
    last = first + datetime.timedelta(days=6)

    df = expenses_frame(first.isoformat(), last.isoformat())
    regular = df[~df['is_special']]

    days = pd.date_range(first, last, freq='D')
    daily = regular.groupby('date')['amount'].sum().reindex(days, fill_value=0).astype('int64')

    total = int(regular['amount'].sum())
    special_total = int(df.loc[df['is_special'], 'amount'].sum())
    budget = records.get_week_budget(week_start_date)
    remaining = budget - total if budget is not None else None

    return {
        'week_start': first.isoformat(),
        'week_end': last.isoformat(),
        'total': total,
        'special_total': special_total,
        'daily': daily,
        'budget': budget,
        'remaining': remaining,
        'over_budget': remaining is not None and remaining < 0,
    }


def category_totals(start: Optional[str] = None, end: Optional[str] = None,
                    exclude_special: bool = False) -> pd.DataFrame:
    """Per-category spending, in taxonomy order, categories without spending included.

    Returns:
        pd.DataFrame: Indexed by category id, with ``label``, ``color``, ``amount`` and
        ``count`` columns.
    """
    df = expenses_frame(start, end)
    if exclude_special:
        df = df[~df['is_special']]

    unknown = set(df['category']) - set(models.CATEGORY_IDS)
    if unknown:
        logging.warning(f'Expenses with unknown categories are not summarized: {sorted(unknown)}')

    grouped = df.groupby('category')['amount'].agg(['sum', 'count'])
    out = pd.DataFrame(models.CATEGORIES).set_index('id')
    out['amount'] = grouped['sum'].reindex(out.index, fill_value=0).astype('int64')
    out['count'] = grouped['count'].reindex(out.index, fill_value=0).astype('int64')
    return out


def budget_text(summary: Dict[str, Any], locale_name: Optional[str] = None) -> str:
    """Describe the state of a week budget, e.g. ``'￥1,350 left'``."""
    if summary['budget'] is None:
        return 'No budget set'

    locale_name = locale_name or lib.settings.get_section('ledger')['locale']
    remaining = summary['remaining']
    amount = locale.format_currency_value(abs(remaining), locale_name)
    if remaining < 0:
        return f'{amount} over budget'
    return f'{amount} left'
