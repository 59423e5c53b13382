from structlog import contextvars

from devsync.logging import (
    MAX_LOG_VALUE_LENGTH,
    TRUNCATION_SUFFIX,
    _mask_sensitive_values,
    _truncate_large_values,
    bind_log_context,
    get_logger,
    unbind_log_context,
)


def test_get_logger_accepts_optional_name() -> None:
    named_logger = get_logger(__name__)
    unnamed_logger = get_logger()

    for logger in (named_logger, unnamed_logger):
        assert hasattr(logger, "info")
        assert callable(logger.info)
        assert hasattr(logger, "bind")
        assert callable(logger.bind)


def test_sensitive_keys_are_masked_recursively() -> None:
    event = {
        "event": "login_attempt",
        "password": "hunter2",
        "headers": {"Authorization": "Bearer abc", "accept": "json"},
        "attempts": [{"token": "xyz"}],
    }

    masked = _mask_sensitive_values(None, "info", event)

    assert masked["password"] == "***"
    assert masked["headers"] == {"Authorization": "***", "accept": "json"}
    assert masked["attempts"] == [{"token": "***"}]
    assert masked["event"] == "login_attempt"


def test_long_values_are_truncated() -> None:
    long_value = "x" * (MAX_LOG_VALUE_LENGTH + 10)

    result = _truncate_large_values(None, "info", {"body": long_value, "items": [long_value, "short"]})

    assert result["body"].endswith(TRUNCATION_SUFFIX)
    assert len(result["body"]) == MAX_LOG_VALUE_LENGTH + len(TRUNCATION_SUFFIX)
    assert result["items"][1] == "short"


def test_bind_and_unbind_log_context() -> None:
    contextvars.clear_contextvars()
    bind_log_context(user_id="u-1", connection_id=None)
    assert contextvars.get_contextvars() == {"user_id": "u-1"}

    unbind_log_context("user_id", "never_bound")
    assert contextvars.get_contextvars() == {}
