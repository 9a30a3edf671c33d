"""Last-Writer-Wins merge of local and remote record collections.

All functions here are pure: they never touch storage and never mutate their inputs.

For every key present on both sides the record with the strictly greater ``updated_at``
wins. On an exact tie the local record is kept. Timestamps are compared as strings, which
orders correctly because every writer emits the same fixed-width UTC form (see
:func:`Seihin.core.models.now_str`).

Tombstones are ordinary records here: a deletion wins or loses on its timestamp like any
other edit. Feeding a previous result back in as ``local`` (the conflict-retry path)
applies the same rule again.
"""
from typing import Callable, Dict, Iterable, List, Optional, TypeVar

from . import models

R = TypeVar('R')


def _remote_wins(local_updated_at: str, remote_updated_at: str) -> bool:
    return remote_updated_at > local_updated_at


def merge_records(local: Iterable[R], remote: Iterable[R], key: Callable[[R], str]) -> List[R]:
    """Merge two keyed record collections.

    Args:
        local: Records from this device.
        remote: Records from the fetched snapshot.
        key: Returns the identity of a record.

    Returns:
        list: The union of both key sets. Local order is kept; keys only the remote knows
        are appended in remote order.
    """
    merged: Dict[str, R] = {}
    for record in local:
        merged[key(record)] = record

    for record in remote:
        k = key(record)
        existing = merged.get(k)
        if existing is None or _remote_wins(existing.updated_at, record.updated_at):
            merged[k] = record

    return list(merged.values())


def merge_expenses(
        local: Iterable[models.ExpenseRecord],
        remote: Iterable[models.ExpenseRecord]
) -> List[models.ExpenseRecord]:
    return merge_records(local, remote, key=lambda r: r.id)


def merge_week_budgets(
        local: Iterable[models.WeekBudgetRecord],
        remote: Iterable[models.WeekBudgetRecord]
) -> List[models.WeekBudgetRecord]:
    return merge_records(local, remote, key=lambda r: r.week_start)


def merge_default_week_budget(
        local: Optional[models.DefaultWeekBudget],
        remote: Optional[models.DefaultWeekBudget]
) -> Optional[models.DefaultWeekBudget]:
    """Merge the default budget singleton. An absent side never wins over a present one."""
    if remote is None:
        return local
    if local is None:
        return remote
    return remote if _remote_wins(local.updated_at, remote.updated_at) else local


def merge_state(local: models.LocalState, remote: models.LocalState) -> models.LocalState:
    """Merge every collection of two device states."""
    return models.LocalState(
        expenses=merge_expenses(local.expenses, remote.expenses),
        week_budgets=merge_week_budgets(local.week_budgets, remote.week_budgets),
        default_week_budget=merge_default_week_budget(local.default_week_budget, remote.default_week_budget),
    )
