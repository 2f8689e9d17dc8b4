# -*- coding: utf-8; -*-

import logging

from flowfeathers import log


def test_nested_messages(caplog, monkeypatch):
    monkeypatch.setattr(log, "_depth", 0)
    caplog.set_level(logging.INFO, logger="flowfeathers")
    log.begin("Time step 1")
    log.begin("Assembling")
    log.info("2 chunks")
    log.end()
    log.warning("slow")
    log.end()
    log.end()  # unbalanced end is harmless
    log.info("done")
    assert [record.getMessage() for record in caplog.records] == ["Time step 1",
                                                                 "  Assembling",
                                                                 "    2 chunks",
                                                                 "  slow",
                                                                 "done"]
    assert caplog.records[3].levelno == logging.WARNING


def test_info_is_hidden_by_default(caplog, monkeypatch):
    monkeypatch.setattr(log, "_depth", 0)
    caplog.set_level(logging.WARNING, logger="flowfeathers")
    log.info("progress")
    log.warning("problem")
    assert [record.getMessage() for record in caplog.records] == ["problem"]
