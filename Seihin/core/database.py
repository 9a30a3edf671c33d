"""
Local SQLite store for the synchronized record collections.

The database holds three independently replaceable collections plus bookkeeping:

- ``expenses`` – one row per :class:`~Seihin.core.models.ExpenseRecord`, tombstones included.
- ``week_budgets`` – one row per :class:`~Seihin.core.models.WeekBudgetRecord`.
- ``metadata`` – key/value rows for the default week budget singleton and the last sync time.

Sync rounds write through :meth:`DatabaseAPI.persist_merged`, which merges the round's state
with the stored rows and rewrites every collection inside a single transaction, so readers
never observe a half-replaced collection and edits made during the round are kept. The
``replace_*`` methods swap collections unconditionally. Local edits use the point ``put_*``
methods.

The schema is versioned with ``PRAGMA user_version``. Databases created by older versions
are migrated forward in place, backfilling new columns with their defaults.
"""

import datetime
import enum
import json
import logging
import pathlib
import sqlite3
from typing import Callable, Dict, Iterable, List, Optional

from PySide6 import QtCore

from . import merge
from . import models
from ..settings import lib
from ..status import status


class Table(enum.StrEnum):
    """Enum for database tables."""
    Expenses = 'expenses'
    WeekBudgets = 'week_budgets'
    Meta = 'metadata'


class MetaKey(enum.StrEnum):
    """Enum for metadata keys."""
    DefaultWeekBudget = 'default_week_budget'
    LastSync = 'last_sync'


def _migrate_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        f'CREATE TABLE IF NOT EXISTS {Table.Expenses.value} ('
        '"id" TEXT PRIMARY KEY, '
        '"date" TEXT NOT NULL, '
        '"amount" INTEGER NOT NULL, '
        '"memo" TEXT NOT NULL DEFAULT \'\', '
        '"created_at" TEXT NOT NULL, '
        '"updated_at" TEXT NOT NULL, '
        '"deleted" INTEGER NOT NULL DEFAULT 0)'
    )
    conn.execute(
        f'CREATE INDEX IF NOT EXISTS idx_expenses_date ON {Table.Expenses.value} ("date")'
    )
    conn.execute(
        f'CREATE TABLE IF NOT EXISTS {Table.Meta.value} ("key" TEXT PRIMARY KEY, "value" TEXT)'
    )


def _migrate_v2(conn: sqlite3.Connection) -> None:
    conn.execute(
        f'ALTER TABLE {Table.Expenses.value} '
        f'ADD COLUMN "category" TEXT NOT NULL DEFAULT \'{models.DEFAULT_CATEGORY}\''
    )
    conn.execute(
        f'CREATE TABLE IF NOT EXISTS {Table.WeekBudgets.value} ('
        '"week_start" TEXT PRIMARY KEY, '
        '"budget" INTEGER NOT NULL, '
        '"updated_at" TEXT)'
    )


def _migrate_v3(conn: sqlite3.Connection) -> None:
    conn.execute(
        f'ALTER TABLE {Table.Expenses.value} ADD COLUMN "is_special" INTEGER NOT NULL DEFAULT 0'
    )
    conn.execute(
        f'ALTER TABLE {Table.WeekBudgets.value} ADD COLUMN "deleted" INTEGER NOT NULL DEFAULT 0'
    )
    # Budgets set before they were synchronized count as edited at migration time
    conn.execute(
        f'UPDATE {Table.WeekBudgets.value} SET "updated_at" = ? WHERE "updated_at" IS NULL',
        (models.now_str(),)
    )


MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _migrate_v1,
    2: _migrate_v2,
    3: _migrate_v3,
}
SCHEMA_VERSION: int = max(MIGRATIONS)


def _expense_from_row(row: sqlite3.Row) -> models.ExpenseRecord:
    return models.ExpenseRecord(
        id=row['id'],
        date=row['date'],
        amount=row['amount'],
        memo=row['memo'],
        category=row['category'],
        created_at=row['created_at'],
        updated_at=row['updated_at'],
        is_special=bool(row['is_special']),
        deleted=bool(row['deleted']),
    )


def _week_budget_from_row(row: sqlite3.Row) -> models.WeekBudgetRecord:
    return models.WeekBudgetRecord(
        week_start=row['week_start'],
        budget=row['budget'],
        updated_at=row['updated_at'],
        deleted=bool(row['deleted']),
    )


def _expense_params(record: models.ExpenseRecord) -> tuple:
    return (
        record.id, record.date, record.amount, record.memo, record.category,
        int(record.is_special), record.created_at, record.updated_at, int(record.deleted),
    )


def _week_budget_params(record: models.WeekBudgetRecord) -> tuple:
    return record.week_start, record.budget, record.updated_at, int(record.deleted)


EXPENSE_INSERT_SQL = (
    f'INSERT OR REPLACE INTO {Table.Expenses.value} '
    '("id", "date", "amount", "memo", "category", "is_special", "created_at", "updated_at", "deleted") '
    'VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)'
)
WEEK_BUDGET_INSERT_SQL = (
    f'INSERT OR REPLACE INTO {Table.WeekBudgets.value} '
    '("week_start", "budget", "updated_at", "deleted") VALUES (?, ?, ?, ?)'
)


class DatabaseAPI(QtCore.QObject):
    """Database API for the local record store. Handles schema migration and data access."""

    def __init__(self, path: Optional[str] = None, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._path: Optional[pathlib.Path] = pathlib.Path(path) if path else None
        self._initialize_schema_if_needed()

    @property
    def db_path(self) -> pathlib.Path:
        return self._path or lib.settings.db_path

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the database.

        Returns:
            sqlite3.Connection: Connection with ``sqlite3.Row`` rows.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=2.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_schema_if_needed(self) -> None:
        """Create the schema or migrate an older one up to SCHEMA_VERSION.

        Raises:
            status.LocalStoreException: If the database cannot be opened or migrated.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            version = conn.execute('PRAGMA user_version').fetchone()[0]
            if version > SCHEMA_VERSION:
                raise status.LocalStoreException(
                    f'Database schema v{version} is newer than this client (v{SCHEMA_VERSION}).'
                )

            for target in range(version + 1, SCHEMA_VERSION + 1):
                logging.info(f'Migrating local database "{self.db_path}" to schema v{target}.')
                with conn:
                    MIGRATIONS[target](conn)
                    conn.execute(f'PRAGMA user_version = {target:d}')

            if version == SCHEMA_VERSION:
                logging.debug('Existing database schema is up to date.')
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to initialize schema: {e}') from e
        finally:
            if conn:
                conn.close()

    def schema_version(self) -> int:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            return conn.execute('PRAGMA user_version').fetchone()[0]
        finally:
            if conn:
                conn.close()

    # ------------------------------------------------------------------ reads

    def read_state(self) -> models.LocalState:
        """Read every collection, tombstones included, from one consistent snapshot.

        Returns:
            models.LocalState: The complete local state.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            with conn:
                # A deferred transaction that reads keeps one view across the three queries
                conn.execute('BEGIN')
                state = self._read_state_in_conn(conn)
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to read local state: {e}') from e
        finally:
            if conn:
                conn.close()

        logging.debug(
            f'Read local state: {len(state.expenses)} expenses, {len(state.week_budgets)} week budgets.'
        )
        return state

    @classmethod
    def _read_state_in_conn(cls, conn: sqlite3.Connection) -> models.LocalState:
        return models.LocalState(
            expenses=[
                _expense_from_row(r) for r in
                conn.execute(f'SELECT * FROM {Table.Expenses.value} ORDER BY rowid')
            ],
            week_budgets=[
                _week_budget_from_row(r) for r in
                conn.execute(f'SELECT * FROM {Table.WeekBudgets.value} ORDER BY rowid')
            ],
            default_week_budget=cls._get_default_week_budget_in_conn(conn),
        )

    def get_expenses(
            self,
            start: Optional[str] = None,
            end: Optional[str] = None,
            include_deleted: bool = False
    ) -> List[models.ExpenseRecord]:
        """Return expenses whose date lies within ``[start, end]`` (both inclusive).

        Args:
            start: First date, ``YYYY-MM-DD``. Open if None.
            end: Last date, ``YYYY-MM-DD``. Open if None.
            include_deleted: Also return tombstones.

        Returns:
            list[models.ExpenseRecord]: Ordered by date, then creation time.
        """
        clauses: List[str] = []
        params: List[str] = []
        if start is not None:
            clauses.append('"date" >= ?')
            params.append(start)
        if end is not None:
            clauses.append('"date" <= ?')
            params.append(end)
        if not include_deleted:
            clauses.append('"deleted" = 0')
        where = f' WHERE {" AND ".join(clauses)}' if clauses else ''

        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            rows = conn.execute(
                f'SELECT * FROM {Table.Expenses.value}{where} ORDER BY "date", "created_at"',
                params
            ).fetchall()
            return [_expense_from_row(r) for r in rows]
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to query expenses: {e}') from e
        finally:
            if conn:
                conn.close()

    def get_expense(self, expense_id: str) -> Optional[models.ExpenseRecord]:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            row = conn.execute(
                f'SELECT * FROM {Table.Expenses.value} WHERE "id" = ?', (expense_id,)
            ).fetchone()
            return _expense_from_row(row) if row else None
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to read expense "{expense_id}": {e}') from e
        finally:
            if conn:
                conn.close()

    def get_week_budget(self, week_start: str) -> Optional[models.WeekBudgetRecord]:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            row = conn.execute(
                f'SELECT * FROM {Table.WeekBudgets.value} WHERE "week_start" = ?', (week_start,)
            ).fetchone()
            return _week_budget_from_row(row) if row else None
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to read week budget "{week_start}": {e}') from e
        finally:
            if conn:
                conn.close()

    def get_default_week_budget(self) -> Optional[models.DefaultWeekBudget]:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            return self._get_default_week_budget_in_conn(conn)
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to read default week budget: {e}') from e
        finally:
            if conn:
                conn.close()

    @staticmethod
    def _get_meta_in_conn(conn: sqlite3.Connection, key: MetaKey) -> Optional[str]:
        row = conn.execute(
            f'SELECT "value" FROM {Table.Meta.value} WHERE "key" = ?', (key.value,)
        ).fetchone()
        return row['value'] if row else None

    @classmethod
    def _get_default_week_budget_in_conn(cls, conn: sqlite3.Connection) -> Optional[models.DefaultWeekBudget]:
        raw = cls._get_meta_in_conn(conn, MetaKey.DefaultWeekBudget)
        if not raw:
            return None
        try:
            return models.DefaultWeekBudget.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logging.warning(f'Ignoring invalid stored default week budget {raw!r}: {e}')
            return None

    # ----------------------------------------------------------------- writes

    def put_expense(self, record: models.ExpenseRecord) -> None:
        """Insert or overwrite a single expense."""
        logging.debug(f'Writing expense id={record.id}, updated_at={record.updated_at}')
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            with conn:
                conn.execute(EXPENSE_INSERT_SQL, _expense_params(record))
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to write expense "{record.id}": {e}') from e
        finally:
            if conn:
                conn.close()

    def put_week_budget(self, record: models.WeekBudgetRecord) -> None:
        """Insert or overwrite a single week budget override."""
        logging.debug(f'Writing week budget week_start={record.week_start}, updated_at={record.updated_at}')
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            with conn:
                conn.execute(WEEK_BUDGET_INSERT_SQL, _week_budget_params(record))
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to write week budget "{record.week_start}": {e}') from e
        finally:
            if conn:
                conn.close()

    def put_default_week_budget(self, value: Optional[models.DefaultWeekBudget]) -> None:
        """Set or clear the default week budget."""
        self.replace_default_week_budget(value)

    @staticmethod
    def _replace_expenses_in_conn(conn: sqlite3.Connection, records: Iterable[models.ExpenseRecord]) -> None:
        conn.execute(f'DELETE FROM {Table.Expenses.value}')
        conn.executemany(EXPENSE_INSERT_SQL, [_expense_params(r) for r in records])

    @staticmethod
    def _replace_week_budgets_in_conn(conn: sqlite3.Connection,
                                      records: Iterable[models.WeekBudgetRecord]) -> None:
        conn.execute(f'DELETE FROM {Table.WeekBudgets.value}')
        conn.executemany(WEEK_BUDGET_INSERT_SQL, [_week_budget_params(r) for r in records])

    @staticmethod
    def _replace_default_week_budget_in_conn(conn: sqlite3.Connection,
                                             value: Optional[models.DefaultWeekBudget]) -> None:
        if value is None:
            conn.execute(
                f'DELETE FROM {Table.Meta.value} WHERE "key" = ?', (MetaKey.DefaultWeekBudget.value,)
            )
            return
        conn.execute(
            f'INSERT OR REPLACE INTO {Table.Meta.value} ("key", "value") VALUES (?, ?)',
            (MetaKey.DefaultWeekBudget.value, json.dumps(value.to_dict()))
        )

    def _run_transaction(self, description: str, func: Callable[[sqlite3.Connection], None]) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            with conn:
                func(conn)
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to {description}: {e}') from e
        finally:
            if conn:
                conn.close()

    def replace_expenses(self, records: Iterable[models.ExpenseRecord]) -> None:
        """Atomically replace the whole expense collection."""
        records = list(records)
        self._run_transaction('replace expenses', lambda c: self._replace_expenses_in_conn(c, records))
        logging.debug(f'Replaced expenses: {len(records)} rows.')

    def replace_week_budgets(self, records: Iterable[models.WeekBudgetRecord]) -> None:
        """Atomically replace the whole week budget collection."""
        records = list(records)
        self._run_transaction('replace week budgets', lambda c: self._replace_week_budgets_in_conn(c, records))
        logging.debug(f'Replaced week budgets: {len(records)} rows.')

    def replace_default_week_budget(self, value: Optional[models.DefaultWeekBudget]) -> None:
        """Atomically replace the default week budget singleton."""
        self._run_transaction(
            'replace default week budget',
            lambda c: self._replace_default_week_budget_in_conn(c, value)
        )

    def replace_state(self, state: models.LocalState) -> None:
        """Replace all three collections in one transaction.

        Args:
            state: The merged state to persist.

        Raises:
            status.LocalStoreException: If the transaction fails. Nothing is written then.
        """
        def _replace(conn: sqlite3.Connection) -> None:
            self._replace_expenses_in_conn(conn, state.expenses)
            self._replace_week_budgets_in_conn(conn, state.week_budgets)
            self._replace_default_week_budget_in_conn(conn, state.default_week_budget)

        self._run_transaction('replace local state', _replace)
        logging.info(
            f'Persisted merged state: {len(state.expenses)} expenses, '
            f'{len(state.week_budgets)} week budgets.'
        )

    def persist_merged(self, state: models.LocalState) -> models.LocalState:
        """Write a merged state without losing local edits made since it was read.

        The stored rows are read again under a write lock and merged with ``state``. A
        stored record wins only if it is strictly newer, which is the case for an edit
        committed while the sync round was waiting on the remote store.

        Args:
            state: The merged state of a sync round.

        Returns:
            models.LocalState: The state actually written.

        Raises:
            status.LocalStoreException: If the transaction fails. Nothing is written then.
        """
        result = {}

        def _persist(conn: sqlite3.Connection) -> None:
            conn.execute('BEGIN IMMEDIATE')
            persisted = merge.merge_state(state, self._read_state_in_conn(conn))
            self._replace_expenses_in_conn(conn, persisted.expenses)
            self._replace_week_budgets_in_conn(conn, persisted.week_budgets)
            self._replace_default_week_budget_in_conn(conn, persisted.default_week_budget)
            result['state'] = persisted

        self._run_transaction('persist merged state', _persist)
        persisted = result['state']
        logging.info(
            f'Persisted merged state: {len(persisted.expenses)} expenses, '
            f'{len(persisted.week_budgets)} week budgets.'
        )
        return persisted

    def purge_deleted(self, state: models.LocalState) -> int:
        """Physically delete the tombstones of ``state`` from local storage.

        Only rows that are still tombstones are removed.

        Args:
            state: The merged state whose tombstones were part of an upload.

        Returns:
            int: Number of deleted rows.
        """
        tombstones = state.tombstones()
        if not tombstones.expenses and not tombstones.week_budgets:
            return 0

        counter = {'rows': 0}

        def _purge(conn: sqlite3.Connection) -> None:
            for r in tombstones.expenses:
                cursor = conn.execute(
                    f'DELETE FROM {Table.Expenses.value} WHERE "id" = ? AND "deleted" = 1', (r.id,)
                )
                counter['rows'] += cursor.rowcount
            for r in tombstones.week_budgets:
                cursor = conn.execute(
                    f'DELETE FROM {Table.WeekBudgets.value} WHERE "week_start" = ? AND "deleted" = 1',
                    (r.week_start,)
                )
                counter['rows'] += cursor.rowcount

        self._run_transaction('purge deleted records', _purge)
        logging.info(f'Purged {counter["rows"]} deleted records from local storage.')
        return counter['rows']

    # ------------------------------------------------------------ bookkeeping

    def stamp(self, value: Optional[str] = None) -> str:
        """Record the time of the last successful sync.

        Args:
            value: Timestamp to store. Defaults to now.

        Returns:
            str: The stored timestamp.
        """
        value = value or models.now_str()
        self._run_transaction(
            'record last sync',
            lambda c: c.execute(
                f'INSERT OR REPLACE INTO {Table.Meta.value} ("key", "value") VALUES (?, ?)',
                (MetaKey.LastSync.value, value)
            )
        )
        return value

    def get_stamp(self) -> Optional[datetime.datetime]:
        """Retrieve the last synchronization timestamp.

        Returns:
            Optional[datetime.datetime]: Last sync time, or None if never synced or invalid.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            raw = self._get_meta_in_conn(conn, MetaKey.LastSync)
        except sqlite3.Error as e:
            raise status.LocalStoreException(f'Failed to read last sync time: {e}') from e
        finally:
            if conn:
                conn.close()

        if not raw:
            return None
        try:
            return datetime.datetime.fromisoformat(raw)
        except ValueError:
            logging.warning(f'Invalid last sync date format in DB: {raw}.')
            return None

    def delete(self) -> None:
        """Delete the local database file.

        Raises:
            status.LocalStoreException: If the file cannot be removed.
        """
        if not self.db_path.exists():
            logging.debug('No local database found to delete.')
            return
        try:
            self.db_path.unlink()
        except OSError as ex:
            raise status.LocalStoreException(f'Failed to remove {self.db_path}: {ex}') from ex
        logging.info(f'Local database removed: {self.db_path}')


database: DatabaseAPI = DatabaseAPI()
