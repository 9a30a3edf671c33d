"""Sync orchestrator: one round of fetch, merge, persist and conditional upload.

A round runs these steps in order:

1. Read the complete local state, tombstones included.
2. Fetch the remote snapshot. A missing file is not an error.
3. Normalize and merge it into the local state, remembering the fetched revision.
4. Persist the merged state locally in one transaction. Local edits committed since step 1
   are merged in, so they are kept and uploaded with the round.
5. Upload the merged snapshot, conditional on the remembered revision (or as a create).
6. On a write conflict, re-fetch, merge into the already merged state, persist and upload
   once more. Any error from this second attempt fails the round.
7. Purge the merged tombstones from local storage.
8. Record the time of the round as the last successful sync.

Only one round may run at a time. A concurrent request is rejected immediately with
:class:`~Seihin.status.status.SyncInProgressException`, it is never queued.

Entry points:

- :meth:`SyncAPI.perform_sync` runs a round on the calling thread and raises on failure.
- :meth:`SyncAPI.sync_now` does the same but returns a failed :class:`SyncResult` instead.
- :meth:`SyncAPI.request_sync` runs the round on a :class:`SyncWorker` thread.
"""
import dataclasses
import enum
import logging
import threading
from typing import Optional, Set, Tuple

from PySide6 import QtCore

from . import database
from . import merge
from . import models
from . import remote
from . import snapshot
from .signals import signals
from ..settings import lib
from ..status import status


class SyncState(enum.StrEnum):
    Idle = 'idle'
    Syncing = 'syncing'
    Success = 'success'
    Error = 'error'


@dataclasses.dataclass(frozen=True)
class SyncResult:
    """Outcome of one sync round.

    Attributes:
        status: ``Status.Okay`` on success, otherwise the tag of the error that ended the round.
        message: User-facing description.
        revision: Remote revision written by the round.
        retried: True if the round recovered from a write conflict.
        purged: Number of tombstones removed from local storage.
        merged: Number of records in the merged state.
    """
    # Quoted: the field name shadows the status module inside the class body
    status: 'status.Status' = status.Status.Okay
    message: str = ''
    revision: Optional[str] = None
    retried: bool = False
    purged: int = 0
    merged: int = 0

    @property
    def ok(self) -> bool:
        return self.status == status.Status.Okay

    @classmethod
    def from_exception(cls, ex: Exception) -> 'SyncResult':
        if isinstance(ex, status.BaseStatusException):
            return cls(status=ex.status, message=str(ex))
        return cls(status=status.Status.UnknownStatus, message=f'{type(ex).__name__}: {ex}')


class SyncGuard:
    """Fail-fast single-flight gate. Acquiring never blocks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()


class SyncWorker(QtCore.QThread):
    """
    Runs one sync round in a background thread. The guard must already be held.

    The outcome is broadcast through :attr:`Signals.syncFinished`.
    """

    def __init__(self, api: 'SyncAPI', store: remote.RemoteStore, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.api = api
        self.store = store

    def run(self) -> None:
        try:
            self.api._execute(self.store)
        except Exception as ex:
            # Already reported through syncFinished
            logging.debug(f'Background sync round failed: {ex}')


class SyncAPI(QtCore.QObject):
    """Runs sync rounds between the local database and the configured remote store.

    Args:
        store: Remote store to use. When None, the store is built from the settings at the
            start of every round.
        db: Local database. Defaults to the :data:`Seihin.core.database.database` singleton.
    """

    def __init__(
            self,
            store: Optional[remote.RemoteStore] = None,
            db: Optional[database.DatabaseAPI] = None,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent=parent)
        self._store = store
        self._db = db
        self._guard = SyncGuard()
        self._state = SyncState.Idle
        self._last_result: Optional[SyncResult] = None
        self._workers: Set[SyncWorker] = set()

    @property
    def db(self) -> database.DatabaseAPI:
        return self._db or database.database

    @property
    def store(self) -> Optional[remote.RemoteStore]:
        if self._store is not None:
            return self._store
        return remote.get_remote_store()

    @property
    def enabled(self) -> bool:
        """True if a remote store is configured."""
        if self._store is not None:
            return True
        return lib.settings.get_section('remote')['provider'] != 'none'

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def last_result(self) -> Optional[SyncResult]:
        return self._last_result

    @property
    def is_syncing(self) -> bool:
        return self._guard.locked

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        signals.syncStateChanged.emit(state.value)

    def _require_store(self) -> remote.RemoteStore:
        store = self.store
        if store is None:
            raise status.RemoteNotConfiguredException
        return store

    def perform_sync(self) -> SyncResult:
        """Run one round on the calling thread.

        Returns:
            SyncResult: The outcome of the successful round.

        Raises:
            status.RemoteNotConfiguredException: If no remote store is configured.
            status.SyncInProgressException: If another round is running.
            status.BaseStatusException: Any error that ended the round.
        """
        store = self._require_store()
        if not self._guard.try_acquire():
            raise status.SyncInProgressException
        return self._execute(store)

    def sync_now(self) -> SyncResult:
        """Run one round on the calling thread and report failures as a result."""
        try:
            return self.perform_sync()
        except status.BaseStatusException as ex:
            return SyncResult.from_exception(ex)

    def request_sync(self) -> Optional[SyncResult]:
        """Start a round on a worker thread.

        The guard is taken here, so a rejected request is reported immediately.

        Returns:
            Optional[SyncResult]: None if the round was started, its outcome arrives
            through :attr:`Signals.syncFinished`. A failed result if it was refused.
        """
        try:
            store = self._require_store()
        except status.BaseStatusException as ex:
            return SyncResult.from_exception(ex)

        if not self._guard.try_acquire():
            return SyncResult.from_exception(status.SyncInProgressException())

        # Finished workers are dropped here rather than from their own finished signal
        self._workers = {w for w in self._workers if not w.isFinished()}
        worker = SyncWorker(self, store)
        self._workers.add(worker)
        worker.start()
        return None

    def wait(self, msecs: int = 30000) -> bool:
        """Block until every running worker has finished.

        Returns:
            bool: False if a worker did not finish within ``msecs``.
        """
        done = all([worker.wait(msecs) for worker in list(self._workers)])
        if done:
            self._workers.clear()
        return done

    def _execute(self, store: remote.RemoteStore) -> SyncResult:
        """Run one round. The guard must be held, it is always released here."""
        self._set_state(SyncState.Syncing)
        try:
            result = self._run_round(store)
        except Exception as ex:
            self._finish(SyncState.Error, SyncResult.from_exception(ex))
            raise
        else:
            self._finish(SyncState.Success, result)
            return result
        finally:
            self._guard.release()
            self._set_state(SyncState.Idle)

    def _finish(self, state: SyncState, result: SyncResult) -> None:
        self._last_result = result
        self._set_state(state)
        signals.syncFinished.emit(result)

    @staticmethod
    def _merge_remote(
            state: models.LocalState,
            remote_file: Optional[remote.RemoteFile]
    ) -> Tuple[models.LocalState, Optional[str]]:
        if remote_file is None:
            logging.debug('No remote snapshot, the local state will be created remotely.')
            return state, None

        remote_snapshot = snapshot.parse_snapshot(remote_file.content)
        merged = merge.merge_state(state, remote_snapshot.state)
        logging.debug(
            f'Merged local ({len(state)}) and remote ({len(remote_snapshot.state)}) '
            f'into {len(merged)} records at revision {remote_file.revision}.'
        )
        return merged, remote_file.revision

    def _persist(self, state: models.LocalState) -> models.LocalState:
        persisted = self.db.persist_merged(state)
        signals.localDataReplaced.emit()
        return persisted

    @staticmethod
    def _upload(store: remote.RemoteStore, state: models.LocalState, expected_revision: Optional[str]) -> str:
        content = snapshot.encode_snapshot(snapshot.build_snapshot(state))
        mode = f'expecting revision {expected_revision}' if expected_revision else 'as a new file'
        logging.debug(f'Uploading {len(content)} bytes to {store.describe()} {mode}.')
        return store.put(content, expected_revision=expected_revision)

    def _run_round(self, store: remote.RemoteStore) -> SyncResult:
        logging.debug(f'Sync round started against {store.describe()}.')

        local = self.db.read_state()
        merged, expected = self._merge_remote(local, store.fetch())
        merged = self._persist(merged)

        retried = False
        try:
            revision = self._upload(store, merged, expected)
        except status.WriteConflictException:
            logging.info('Remote snapshot changed during the round, retrying once.')
            retried = True
            merged, expected = self._merge_remote(merged, store.fetch())
            merged = self._persist(merged)
            revision = self._upload(store, merged, expected)

        purged = self.db.purge_deleted(merged)
        self.db.stamp()

        result = SyncResult(
            status=status.Status.Okay,
            message=status.get_message(status.Status.Okay),
            revision=revision,
            retried=retried,
            purged=purged,
            merged=len(merged),
        )
        logging.info(
            f'Sync finished: {result.merged} records, {result.purged} purged, '
            f'revision {result.revision}{" (after retry)" if retried else ""}.'
        )
        return result


sync: SyncAPI = SyncAPI()
