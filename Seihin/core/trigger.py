"""Debounced sync trigger.

Every local mutation emits :attr:`~Seihin.core.signals.Signals.localDataChanged`. The
trigger collapses a burst of such changes into a single sync request, issued once no
further change has arrived for ``sync.debounce_seconds``.
"""
import logging
from typing import Optional

from PySide6 import QtCore

from . import sync as sync_module
from .signals import signals
from ..settings import lib


class SyncTrigger(QtCore.QObject):
    """Starts sync rounds after a quiet period following local changes.

    Args:
        api: The orchestrator to invoke. Defaults to the :data:`Seihin.core.sync.sync` singleton.
        interval_ms: Quiet period in milliseconds. Defaults to the ``sync.debounce_seconds`` setting.
        background: Run rounds on a worker thread through :meth:`SyncAPI.request_sync`.
            When False, rounds run on the calling thread through :meth:`SyncAPI.sync_now`.
    """

    def __init__(
            self,
            api: Optional[sync_module.SyncAPI] = None,
            interval_ms: Optional[int] = None,
            background: bool = True,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent=parent)
        self._api = api
        self._background = background
        self._connected = False
        self._follow_settings = interval_ms is None

        if interval_ms is None:
            interval_ms = lib.settings.get_section('sync')['debounce_seconds'] * 1000

        self.timer = QtCore.QTimer(self)
        self.timer.setSingleShot(True)
        self.timer.setInterval(interval_ms)

        self._connect_signals()

    @property
    def api(self) -> sync_module.SyncAPI:
        return self._api or sync_module.sync

    def _connect_signals(self) -> None:
        self.timer.timeout.connect(self.fire)
        signals.localDataChanged.connect(self.notify)
        signals.configSectionChanged.connect(self.on_config_changed)
        self._connected = True

    @QtCore.Slot(str)
    def on_config_changed(self, section: str) -> None:
        if section == 'sync' and self._follow_settings:
            self.timer.setInterval(lib.settings.get_section('sync')['debounce_seconds'] * 1000)

    @property
    def pending(self) -> bool:
        return self.timer.isActive()

    @QtCore.Slot(str)
    def notify(self, collection: str = '') -> None:
        """Restart the quiet period. Does nothing while sync is disabled."""
        if not self.api.enabled:
            return
        logging.debug(f'Local change{f" in {collection}" if collection else ""}, sync scheduled.')
        self.timer.start()

    @QtCore.Slot()
    def fire(self) -> None:
        """Called when the quiet period elapses."""
        self._run()

    def sync_now(self) -> Optional[sync_module.SyncResult]:
        """Start a round immediately, bypassing the quiet period.

        A pending debounced round is left scheduled.
        """
        return self._run()

    def start(self) -> Optional[sync_module.SyncResult]:
        """Run the startup sync if sync is enabled and ``sync.sync_on_startup`` is set."""
        if not self.api.enabled:
            logging.debug('Sync is not configured, skipping startup sync.')
            return None
        if not lib.settings.get_section('sync')['sync_on_startup']:
            return None
        return self._run()

    def _run(self) -> Optional[sync_module.SyncResult]:
        if self._background:
            return self.api.request_sync()
        return self.api.sync_now()

    def teardown(self) -> None:
        """Cancel any pending round and stop listening for changes."""
        self.timer.stop()
        if not self._connected:
            return
        self.timer.timeout.disconnect(self.fire)
        signals.localDataChanged.disconnect(self.notify)
        signals.configSectionChanged.disconnect(self.on_config_changed)
        self._connected = False
