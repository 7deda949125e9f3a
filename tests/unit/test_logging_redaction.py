import logging

from owninstead.utils.logging_redaction import RedactingFilter, redact_message


def test_redacts_aggregator_and_push_tokens():
    message = redact_message(
        "sync access-sandbox-4f9c2a10-1b2c user=user-1 push=ExponentPushToken[xYz123]"
    )

    assert "4f9c2a10" not in message
    assert "xYz123" not in message
    assert "access-[REDACTED]" in message
    assert "ExpoPushToken[REDACTED]" in message
    assert "user=user-1" in message


def test_redacts_bearer_and_key_value_secrets():
    assert redact_message("Authorization: Bearer abc.def-123") == "Authorization: Bearer [REDACTED]"
    assert redact_message("secret=s3cr3t") == "secret=[REDACTED]"


def test_filter_rewrites_formatted_record():
    record = logging.LogRecord(
        "owninstead", logging.INFO, __file__, 1, "token=%s for %s", ("abc123", "user-1"), None
    )

    assert RedactingFilter().filter(record) is True
    assert record.getMessage() == "token=[REDACTED] for user-1"
