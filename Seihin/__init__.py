"""
Seihin: offline-first expense ledger that keeps devices in step through a shared snapshot file.

This package provides:

- :mod:`Seihin.core` – Local SQLite store, record API, Last-Writer-Wins merge, remote stores and the sync orchestrator.
- :mod:`Seihin.data` – pandas-based weekly and per-category summaries of the ledger.
- :mod:`Seihin.settings` – Settings management with schema validation, and locale-aware formatting.
- :mod:`Seihin.status` – Status codes and the tagged exceptions used across the package.
- :mod:`Seihin.log` – Logging setup with an in-memory log tank.

Use :func:`Seihin.exec_` to run a headless sync from the command line.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('Seihin requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'Seihin: offline-first expense ledger with snapshot synchronization.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Run one sync round in a Qt event loop and exit.

    Exits with 0 if the round succeeded, or sync is not configured, and 1 otherwise.
    """
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)

    from .core import sync
    from .core import trigger

    api = sync.SyncAPI()
    if not api.enabled:
        print('Sync is not configured. Set remote.provider in the settings file.')
        sys.exit(0)

    # The round runs on the main thread once the event loop is up
    sync_trigger = trigger.SyncTrigger(api=api, background=False)

    def run() -> None:
        result = sync_trigger.sync_now()
        print(result.message)
        app.exit(0 if result.ok else 1)

    QtCore.QTimer.singleShot(0, run)
    exit_code = app.exec()
    sync_trigger.teardown()
    sys.exit(exit_code)


if __name__ == '__main__':
    exec_()
