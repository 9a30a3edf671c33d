"""Typed value model for the synchronized record collections.

Three entity kinds are synchronized between devices:

- :class:`ExpenseRecord`: one itemized expense, keyed by ``id``.
- :class:`WeekBudgetRecord`: a budget override for one ISO week, keyed by ``week_start``.
- :class:`DefaultWeekBudget`: the singleton budget used when a week has no override.

Records are immutable dataclasses; edits produce new instances through
:func:`dataclasses.replace`. ``to_dict`` / ``from_dict`` convert to and from the
camelCase wire format of the snapshot file. ``from_dict`` expects already normalized
data, see :mod:`Seihin.core.snapshot`.
"""
import dataclasses
import datetime
from typing import Any, Dict, List, Optional

CATEGORIES: List[Dict[str, str]] = [
    {'id': 'food', 'label': 'Food', 'color': '#4CAF50'},
    {'id': 'transport', 'label': 'Transport', 'color': '#2196F3'},
    {'id': 'entertainment', 'label': 'Entertainment', 'color': '#FF9800'},
    {'id': 'books', 'label': 'Books', 'color': '#9C27B0'},
    {'id': 'other', 'label': 'Other', 'color': '#607D8B'},
]
CATEGORY_IDS: List[str] = [c['id'] for c in CATEGORIES]
DEFAULT_CATEGORY: str = 'food'

#: Loses every comparison against a real timestamp
EPOCH_TIMESTAMP: str = '1970-01-01T00:00:00.000Z'

DATE_FORMAT: str = '%Y-%m-%d'


def now_str() -> str:
    """Return the current UTC time as a canonical ISO 8601 string.

    The format is ``YYYY-MM-DDTHH:MM:SS.mmmZ``, identical to the browser clients'
    ``Date.toISOString()``. Timestamps are compared as strings, so every writer has to
    produce the same fixed-width form.

    Returns:
        str: e.g. ``'2026-02-14T10:00:00.000Z'``.
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f'{now.microsecond // 1000:03d}Z'


def is_iso_date(value: Any) -> bool:
    """Return True if value is a ``YYYY-MM-DD`` string naming a real calendar date."""
    if not isinstance(value, str) or len(value) != 10:
        return False
    try:
        datetime.datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return False
    return True


@dataclasses.dataclass(frozen=True)
class ExpenseRecord:
    """One itemized expense."""
    id: str
    date: str
    amount: int
    memo: str
    category: str
    created_at: str
    updated_at: str
    is_special: bool = False
    deleted: bool = False

    @property
    def key(self) -> str:
        return self.id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExpenseRecord':
        return cls(
            id=data['id'],
            date=data['date'],
            amount=data['amount'],
            memo=data['memo'],
            category=data['category'],
            created_at=data['createdAt'],
            updated_at=data['updatedAt'],
            is_special=data['isSpecial'],
            deleted=data['deleted'],
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'date': self.date,
            'amount': self.amount,
            'memo': self.memo,
            'category': self.category,
            'isSpecial': self.is_special,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        if self.deleted:
            data['deleted'] = True
        return data


@dataclasses.dataclass(frozen=True)
class WeekBudgetRecord:
    """Budget override for the ISO week starting on ``week_start`` (a Monday)."""
    week_start: str
    budget: int
    updated_at: str
    deleted: bool = False

    @property
    def key(self) -> str:
        return self.week_start

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WeekBudgetRecord':
        return cls(
            week_start=data['weekStart'],
            budget=data['budget'],
            updated_at=data['updatedAt'],
            deleted=data['deleted'],
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'weekStart': self.week_start,
            'budget': self.budget,
            'updatedAt': self.updated_at,
        }
        if self.deleted:
            data['deleted'] = True
        return data


@dataclasses.dataclass(frozen=True)
class DefaultWeekBudget:
    """Singleton budget applied to weeks without a live override."""
    budget: int
    updated_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DefaultWeekBudget':
        return cls(budget=data['budget'], updated_at=data['updatedAt'])

    def to_dict(self) -> Dict[str, Any]:
        return {'budget': self.budget, 'updatedAt': self.updated_at}


@dataclasses.dataclass(frozen=True)
class LocalState:
    """The complete synchronized state of one device, tombstones included."""
    expenses: List[ExpenseRecord] = dataclasses.field(default_factory=list)
    week_budgets: List[WeekBudgetRecord] = dataclasses.field(default_factory=list)
    default_week_budget: Optional[DefaultWeekBudget] = None

    def tombstones(self) -> 'LocalState':
        """Return a state holding only the soft-deleted records."""
        return LocalState(
            expenses=[r for r in self.expenses if r.deleted],
            week_budgets=[r for r in self.week_budgets if r.deleted],
        )

    def __len__(self) -> int:
        return len(self.expenses) + len(self.week_budgets) + (1 if self.default_week_budget else 0)


@dataclasses.dataclass(frozen=True)
class SyncSnapshot:
    """The document exchanged with the remote store."""
    schema_version: int
    updated_at: str
    state: LocalState

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'schemaVersion': self.schema_version,
            'updatedAt': self.updated_at,
            'expenses': [r.to_dict() for r in self.state.expenses],
            'weekBudgets': [r.to_dict() for r in self.state.week_budgets],
        }
        if self.state.default_week_budget is not None:
            data['defaultWeekBudget'] = self.state.default_week_budget.to_dict()
        return data
