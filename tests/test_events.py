"""Tests for logging setup and the command timer."""

from __future__ import annotations

import logging
import time

from xlmodel.observe.events import Timer, configure_logging


def test_timer_measures_elapsed_ms():
    with Timer() as t:
        time.sleep(0.01)
    assert t.elapsed_ms >= 10


def test_configure_logging_is_idempotent():
    logger = logging.getLogger("xlmodel")
    configure_logging("debug")
    configure_logging("INFO")
    ours = [h for h in logger.handlers if getattr(h, "_xlmodel", False)]
    assert len(ours) == 1
    assert logger.level == logging.INFO
    configure_logging(logging.WARNING)
    assert logger.level == logging.WARNING


def test_library_logs_reach_handlers(caplog):
    import xlmodel

    with caplog.at_level(logging.DEBUG, logger="xlmodel"):
        wb = xlmodel.from_blank()
        wb.add_sheet("Logged")
    assert any("Added sheet 'Logged'" in r.getMessage() for r in caplog.records)
