import logging

import pytest

from samaritan.log import PrefixLogger

LOGGER_NAME = "samaritan.log"


def test_new_log_keeps_prefix():
    assert PrefixLogger("prefix").prefix == "prefix"


def test_attach_prefix():
    assert PrefixLogger("prefix").attach_prefix("blabla") == "prefix blabla"


def test_info_is_prefixed(caplog):
    log = PrefixLogger("[svc]")
    with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
        log.info("hello %s", "world")
    assert caplog.messages[-1] == "[svc] hello world"
    assert caplog.records[-1].levelno == logging.INFO


def test_debug_and_warning_levels(caplog):
    log = PrefixLogger("p")
    with caplog.at_level(logging.DEBUG, logger=LOGGER_NAME):
        log.debug("d %d", 1)
        log.warning("w")
    assert [(r.levelno, r.getMessage()) for r in caplog.records[-2:]] == [
        (logging.DEBUG, "p d 1"),
        (logging.WARNING, "p w"),
    ]


def test_percent_in_prefix_is_kept(caplog):
    log = PrefixLogger("100%")
    with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
        log.info("done")
    assert caplog.messages[-1] == "100% done"


def test_fatal_logs_and_exits(caplog):
    log = PrefixLogger("p")
    with caplog.at_level(logging.CRITICAL, logger=LOGGER_NAME):
        with pytest.raises(SystemExit) as info:
            log.fatal("boom")
    assert info.value.code == 1
    assert caplog.messages[-1] == "p boom"