"""Snapshot normalization and encoding.

Every snapshot fetched from the remote store passes through :func:`parse_snapshot`
exactly once. Older clients wrote fewer fields: schema version 1 had no ``category``,
version 2 had no ``isSpecial``, ``weekBudgets`` or ``defaultWeekBudget``, and early
week budgets had no ``updatedAt``. Missing fields are backfilled from the default tables
below so the rest of the engine only ever sees fully populated records.

Anything that cannot be normalized raises :class:`~Seihin.status.status.MalformedSnapshotException`.
"""
import json
import logging
from typing import Any, Dict, Optional, Union

from . import models
from ..status import status

#: Highest schema version this client knows. Written to every outgoing snapshot.
SCHEMA_VERSION: int = 3

SNAPSHOT_DEFAULTS: Dict[str, Any] = {
    'weekBudgets': [],
    'defaultWeekBudget': None,
}

EXPENSE_DEFAULTS: Dict[str, Any] = {
    'memo': '',
    'category': models.DEFAULT_CATEGORY,
    'isSpecial': False,
    'deleted': False,
}

WEEK_BUDGET_DEFAULTS: Dict[str, Any] = {
    'updatedAt': models.EPOCH_TIMESTAMP,
    'deleted': False,
}

EXPENSE_FIELD_TYPES: Dict[str, type] = {
    'id': str,
    'date': str,
    'amount': int,
    'memo': str,
    'category': str,
    'isSpecial': bool,
    'createdAt': str,
    'updatedAt': str,
    'deleted': bool,
}

WEEK_BUDGET_FIELD_TYPES: Dict[str, type] = {
    'weekStart': str,
    'budget': int,
    'updatedAt': str,
    'deleted': bool,
}


def _fill_defaults(data: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(data)
    for field, default in defaults.items():
        if result.get(field) is None:
            result[field] = list(default) if isinstance(default, list) else default
    return result


def _check_types(data: Dict[str, Any], field_types: Dict[str, type], where: str) -> None:
    for field, expected in field_types.items():
        if field not in data:
            raise status.MalformedSnapshotException(f'{where}: missing "{field}".')
        value = data[field]
        if expected is int:
            # JSON has no integer type of its own; 500.0 is accepted as 500
            if isinstance(value, float) and value.is_integer():
                data[field] = value = int(value)
            if isinstance(value, bool) or not isinstance(value, int):
                raise status.MalformedSnapshotException(f'{where}: "{field}" must be an integer, got {value!r}.')
            if value < 0:
                raise status.MalformedSnapshotException(f'{where}: "{field}" must not be negative, got {value}.')
        elif not isinstance(value, expected):
            raise status.MalformedSnapshotException(
                f'{where}: "{field}" must be {expected.__name__}, got {type(value).__name__}.')


def normalize_expense(data: Any, index: int = 0) -> models.ExpenseRecord:
    """Backfill and validate one raw expense dict.

    Args:
        data: The raw JSON object.
        index: Position in the ``expenses`` list, used in error messages.

    Returns:
        models.ExpenseRecord: The normalized record.

    Raises:
        status.MalformedSnapshotException: If required fields are missing or mistyped.
    """
    where = f'expenses[{index}]'
    if not isinstance(data, dict):
        raise status.MalformedSnapshotException(f'{where} is not an object.')

    defaults = dict(EXPENSE_DEFAULTS)
    # Records without a creation stamp are dated by their last edit
    defaults['createdAt'] = data.get('updatedAt')
    item = _fill_defaults(data, defaults)
    _check_types(item, EXPENSE_FIELD_TYPES, where)
    return models.ExpenseRecord.from_dict(item)


def normalize_week_budget(data: Any, index: int = 0) -> models.WeekBudgetRecord:
    """Backfill and validate one raw week budget dict."""
    where = f'weekBudgets[{index}]'
    if not isinstance(data, dict):
        raise status.MalformedSnapshotException(f'{where} is not an object.')

    item = _fill_defaults(data, WEEK_BUDGET_DEFAULTS)
    _check_types(item, WEEK_BUDGET_FIELD_TYPES, where)
    return models.WeekBudgetRecord.from_dict(item)


def normalize_default_week_budget(data: Any) -> Optional[models.DefaultWeekBudget]:
    """Validate the optional default budget singleton."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise status.MalformedSnapshotException('defaultWeekBudget is not an object.')

    item = dict(data)
    _check_types(item, {'budget': int, 'updatedAt': str}, 'defaultWeekBudget')
    return models.DefaultWeekBudget.from_dict(item)


def normalize_snapshot(data: Any) -> models.SyncSnapshot:
    """Turn a decoded snapshot document into a fully populated :class:`~Seihin.core.models.SyncSnapshot`.

    Args:
        data: The decoded JSON document.

    Returns:
        models.SyncSnapshot: The normalized snapshot.

    Raises:
        status.MalformedSnapshotException: If the document has the wrong shape.
    """
    if not isinstance(data, dict):
        raise status.MalformedSnapshotException(
            f'Top level must be an object, got {type(data).__name__}.')

    # The earliest clients called the field "version"
    version = data.get('schemaVersion', data.get('version', 1))
    if isinstance(version, bool) or not isinstance(version, int):
        raise status.MalformedSnapshotException(f'Invalid schema version {version!r}.')
    if version > SCHEMA_VERSION:
        logging.warning(
            f'Remote snapshot has schema version {version}, newer than {SCHEMA_VERSION}. '
            f'Unknown fields will not be preserved.'
        )

    data = _fill_defaults(data, SNAPSHOT_DEFAULTS)

    expenses = data.get('expenses')
    if not isinstance(expenses, list):
        raise status.MalformedSnapshotException('"expenses" must be a list.')
    week_budgets = data['weekBudgets']
    if not isinstance(week_budgets, list):
        raise status.MalformedSnapshotException('"weekBudgets" must be a list.')

    updated_at = data.get('updatedAt', models.EPOCH_TIMESTAMP)
    if not isinstance(updated_at, str):
        raise status.MalformedSnapshotException('"updatedAt" must be a string.')

    state = models.LocalState(
        expenses=[normalize_expense(e, i) for i, e in enumerate(expenses)],
        week_budgets=[normalize_week_budget(w, i) for i, w in enumerate(week_budgets)],
        default_week_budget=normalize_default_week_budget(data['defaultWeekBudget']),
    )
    logging.debug(
        f'Normalized snapshot v{version}: {len(state.expenses)} expenses, '
        f'{len(state.week_budgets)} week budgets, '
        f'default budget {"set" if state.default_week_budget else "unset"}.'
    )
    return models.SyncSnapshot(schema_version=version, updated_at=updated_at, state=state)


def parse_snapshot(content: Union[bytes, str]) -> models.SyncSnapshot:
    """Decode and normalize raw snapshot file content.

    Args:
        content: The file content as fetched from the remote store.

    Returns:
        models.SyncSnapshot: The normalized snapshot.

    Raises:
        status.MalformedSnapshotException: If the content is not valid JSON or has the wrong shape.
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as ex:
        raise status.MalformedSnapshotException(f'Invalid JSON: {ex}') from ex
    return normalize_snapshot(data)


def build_snapshot(state: models.LocalState) -> models.SyncSnapshot:
    """Create the outgoing snapshot for a merged state, stamped with the current time."""
    return models.SyncSnapshot(schema_version=SCHEMA_VERSION, updated_at=models.now_str(), state=state)


def encode_snapshot(snapshot: models.SyncSnapshot) -> bytes:
    """Serialize a snapshot to UTF-8 JSON bytes."""
    return json.dumps(snapshot.to_dict(), ensure_ascii=False).encode('utf-8')
