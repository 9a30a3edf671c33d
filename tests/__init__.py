"""Seihin test suite.

Qt's standard paths are switched to test mode before any Seihin module is imported, so
the settings and database singletons never touch the real application data directory.
"""
from PySide6 import QtCore

QtCore.QStandardPaths.setTestModeEnabled(True)
