from datetime import datetime, timezone

from dca_client.timestamp_utils import (
    format_timestamp_iso,
    parse_timestamp,
    timestamp_to_unix,
)


def test_parse_iso_with_zulu_suffix():
    assert parse_timestamp("2021-12-01T00:00:00Z") == datetime(
        2021, 12, 1, tzinfo=timezone.utc
    )


def test_parse_iso_truncates_nanoseconds():
    assert parse_timestamp("2023-05-01T10:00:00.123456789Z") == datetime(
        2023, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc
    )


def test_parse_space_separated_offset():
    # Coinbase Exchange ledger format
    assert parse_timestamp("2021-12-01 08:30:00.5+00:00") == datetime(
        2021, 12, 1, 8, 30, 0, 500000, tzinfo=timezone.utc
    )


def test_parse_unix_seconds_and_milliseconds():
    expected = datetime.fromtimestamp(1696669429, tz=timezone.utc)

    assert parse_timestamp(1696669429) == expected
    assert parse_timestamp(1696669429000) == expected
    assert parse_timestamp("1696669429000") == expected


def test_parse_empty_and_garbage():
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None
    assert parse_timestamp("not a date") is None


def test_format_and_unix():
    moment = datetime(2021, 12, 1, 0, 0, 1, 250000, tzinfo=timezone.utc)

    assert format_timestamp_iso(moment) == "2021-12-01T00:00:01.250Z"
    assert timestamp_to_unix(moment) == 1638316801
