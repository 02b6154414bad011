import json
import logging

from utils.logging_config import (
    LogContext,
    SanitizingFormatter,
    StructuredFormatter,
    redact,
    setup_logging,
)


def _record(msg, *args, **extra):
    record = logging.LogRecord("dcabot.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_redact_masks_credentials_and_signatures():
    message = redact("api_key=abc123 CB-ACCESS-SIGN: c2lnbmVk passphrase='hunter2'")

    assert "abc123" not in message
    assert "c2lnbmVk" not in message
    assert "hunter2" not in message
    assert "api_key=[REDACTED]" in message


def test_redact_leaves_plain_messages_alone():
    assert redact("Placing order for BTC-USD") == "Placing order for BTC-USD"


def test_sanitizing_formatter_redacts_interpolated_args():
    formatter = SanitizingFormatter("%(message)s")

    output = formatter.format(_record("using %s", "api_secret=topsecret"))

    assert output == "using api_secret=[REDACTED]"


def test_structured_formatter_includes_context_fields():
    formatter = StructuredFormatter()

    output = json.loads(
        formatter.format(_record("order %s placed", "42", coin="BTC", order_id="42"))
    )

    assert output["message"] == "order 42 placed"
    assert output["level"] == "INFO"
    assert output["coin"] == "BTC"
    assert output["order_id"] == "42"
    assert "msg" not in output


def test_log_context_sets_and_restores_fields():
    factory = logging.getLogRecordFactory()

    with LogContext(coin="ETH", symbol="ETH-USD"):
        record = logging.getLogger("dcabot.test").makeRecord(
            "dcabot.test", logging.INFO, __file__, 1, "hello", (), None
        )

    assert record.coin == "ETH"
    assert record.symbol == "ETH-USD"
    assert logging.getLogRecordFactory() is factory


def test_setup_logging_writes_json_file_and_leaves_library_loggers(tmp_path):
    log_file = tmp_path / "logs" / "dcabot.log"
    root = logging.getLogger()
    previous = list(root.handlers), root.level
    library_level = logging.getLogger("urllib3").level
    try:
        setup_logging("debug", structured=True, log_file=str(log_file))
        logging.getLogger("dcabot.test").debug("dry run for %s", "BTC-USD")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        for handler in previous[0]:
            root.addHandler(handler)
        root.setLevel(previous[1])

    line = json.loads(log_file.read_text().splitlines()[0])
    assert line["message"] == "dry run for BTC-USD"
    assert line["level"] == "DEBUG"
    assert logging.getLogger("urllib3").level == library_level
