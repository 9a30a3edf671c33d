"""Application-wide Qt signal hub."""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for configuration, local data and sync events."""
    configSectionChanged = QtCore.Signal(str)  # Section

    # Emitted by local mutations with the name of the touched collection
    localDataChanged = QtCore.Signal(str)
    # Emitted after a sync round replaced local collections
    localDataReplaced = QtCore.Signal()

    syncStateChanged = QtCore.Signal(str)
    syncFinished = QtCore.Signal(object)  # SyncResult

    authenticationRequested = QtCore.Signal()

    error = QtCore.Signal(str)


signals = Signals()
