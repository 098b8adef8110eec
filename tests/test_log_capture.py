import pytest
from loguru import logger

from scalecron.logs.capture import TokenLogStore, token_fingerprint, token_logger


@pytest.fixture
def log_store():
    store = TokenLogStore(max_lines=3)
    store.install()
    yield store
    store.uninstall()


def test_lines_are_routed_by_token(log_store) -> None:
    token_logger("alpha").info("scaled {}", "app-1")
    token_logger("beta").warning("scaled {}", "db-1")
    logger.info("unowned line")

    alpha = log_store.read("alpha")
    assert "scaled app-1" in alpha
    assert "db-1" not in alpha
    assert "unowned" not in alpha
    assert "scaled db-1" in log_store.read("beta")
    assert log_store.read("gamma") == ""


def test_lines_carry_a_timestamp_prefix(log_store) -> None:
    token_logger("alpha").info("hello")

    (line,) = log_store.lines("alpha")
    stamp, _, message = line.partition(": ")
    assert stamp[:4].isdigit() and "T" in stamp
    assert message == "hello\n"


def test_buffers_are_bounded(log_store) -> None:
    log = token_logger("alpha")
    for i in range(5):
        log.info("line {}", i)

    lines = log_store.lines("alpha")
    assert len(lines) == 3
    assert lines[0].endswith("line 2\n")


def test_reset_clears_only_that_token(log_store) -> None:
    token_logger("alpha").info("old")
    token_logger("beta").info("kept")

    log_store.reset("alpha")

    assert log_store.read("alpha") == ""
    assert "kept" in log_store.read("beta")


def test_uninstalled_store_captures_nothing() -> None:
    store = TokenLogStore()
    token_logger("alpha").info("dropped")

    assert store.read("alpha") == ""


def test_fingerprint_hides_token() -> None:
    fp = token_fingerprint("secret-token")

    assert len(fp) == 16
    assert "secret" not in fp
    assert fp == token_fingerprint("secret-token")
    assert fp != token_fingerprint("other-token")
