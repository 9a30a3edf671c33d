# tests/test_log.py
"""
Tests for Seihin.log.log (TankHandler, Qt bridge, setup helpers).

Run:
    python -m unittest tests.test_log
"""
import logging
import time
from typing import List

from PySide6.QtCore import QtMsgType

from Seihin.log import log
from Seihin.log.log import (
    TankHandler,
    qt_message_handler,
    set_logging_level,
    setup_logging,
)
from Seihin.core import sync
from Seihin.core.signals import signals
from Seihin.status import status
from tests.base import BaseTestCase, MemoryRemoteStore


class LogModuleTests(BaseTestCase):
    """
    Each test starts with a fresh root logger configured by
    setup_logging(enable_stream_handler=False).
    """

    def setUp(self) -> None:
        super().setUp()

        logging.disable(logging.NOTSET)

        setup_logging(enable_stream_handler=False,
                      enable_qt_handler=False,
                      log_level=logging.DEBUG)

        self.root_logger = logging.getLogger()
        self.tank: TankHandler = log.get_tank()

    def tearDown(self) -> None:
        setup_logging(enable_qt_handler=False)
        super().tearDown()

    def test_tank_bulk_append_speed(self):
        self.tank.clear_logs()
        N = 10_000
        t0 = time.perf_counter()
        for i in range(N):
            logging.debug("bulk-%05d", i)
        elapsed = time.perf_counter() - t0

        self.assertLessEqual(elapsed, 2.0, f"logging {N} messages took {elapsed:.2f}s")
        self.assertEqual(len(self.tank.tank), N)

    def test_set_logging_level_accepts_valid_levels(self):
        set_logging_level(logging.ERROR)
        self.assertEqual(self.root_logger.level, logging.ERROR)

    def test_set_logging_level_rejects_non_int(self):
        with self.assertRaises(ValueError):
            set_logging_level("INFO")  # type: ignore[arg-type]

    def test_set_logging_level_rejects_unknown(self):
        with self.assertRaises(ValueError):
            set_logging_level(1234)

    def test_tank_handler_stores_and_filters(self):
        logging.debug("dbg message")
        logging.error("err message")
        self.assertEqual(len(self.tank.tank), 2)
        errs: List[str] = self.tank.get_logs(logging.ERROR)
        self.assertEqual(len(errs), 1)
        self.assertIn("err message", errs[0])
        self.tank.clear_logs()
        self.assertEqual(len(self.tank.tank), 0)

    def test_status_exceptions_log_and_signal(self):
        errors: List[str] = []

        def _slot(message: str) -> None:
            errors.append(message)

        signals.error.connect(_slot)
        try:
            status.WriteConflictException('revision 3')
            status.RemoteUnavailableException('offline')
        finally:
            signals.error.disconnect(_slot)

        warnings = [m for m in self.tank.get_logs(logging.WARNING) if 'WARNING' in m]
        self.assertEqual(len(warnings), 1)
        self.assertIn('revision 3', warnings[0])
        self.assertIn('offline', self.tank.get_logs(logging.ERROR)[-1])
        # Only error-level statuses reach the UI
        self.assertEqual(errors, ['offline'])

    def test_qt_message_handler_maps_to_logging(self):
        qt_message_handler(QtMsgType.QtInfoMsg, None, "Qt info")
        qt_message_handler(QtMsgType.QtWarningMsg, None, "Qt warn")
        msgs = self.tank.get_logs()
        self.assertTrue(any("Qt info" in m for m in msgs))
        self.assertTrue(any("Qt warn" in m for m in msgs))

    def test_qt_message_handler_fatal_exits(self):
        with self.assertRaises(SystemExit):
            qt_message_handler(QtMsgType.QtFatalMsg, None, "fatal")

    def test_setup_logging_installs_tank_handler_only(self):
        self.assertEqual(
            [type(h) for h in self.root_logger.handlers],
            [TankHandler],
        )

    def test_log_format(self):
        logging.info("formatted")
        self.assertRegex(self.tank.get_logs()[-1], r'^\[.+\] <test_log> INFO:  formatted$')

    def test_tank_reads_back_sync_round(self):
        self.tank.clear_logs()
        api = sync.SyncAPI(store=MemoryRemoteStore())
        self.assertTrue(api.perform_sync().ok)

        info = self.tank.get_logs(logging.INFO)
        self.assertTrue(any('Sync finished' in m for m in info))
        self.assertFalse(any('Uploading' in m for m in info))
        self.assertTrue(any('Uploading' in m for m in self.tank.get_logs()))
