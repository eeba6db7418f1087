from datetime import datetime, timedelta, timezone

from storefront.services.time_window import (
    EXPIRED,
    evaluate,
    is_expired,
    parse_deadline,
    to_epoch_ms,
)

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_decomposes_remaining_time():
    deadline = NOW + timedelta(days=2, hours=3, minutes=4, seconds=5, milliseconds=999)
    remaining = evaluate(deadline, NOW)

    assert (remaining.days, remaining.hours, remaining.minutes, remaining.seconds) == (2, 3, 4, 5)
    assert remaining.is_expired is False
    assert remaining.total_seconds == 2 * 86400 + 3 * 3600 + 4 * 60 + 5


def test_ninety_seconds_left():
    remaining = evaluate("2025-03-01T12:01:30Z", NOW)
    assert remaining.to_dict() == {
        "days": 0,
        "hours": 0,
        "minutes": 1,
        "seconds": 30,
        "is_expired": False,
    }


def test_deadline_equal_to_now_is_expired():
    assert evaluate(NOW, NOW) == EXPIRED
    assert is_expired(NOW, NOW)


def test_one_millisecond_left_is_not_expired():
    remaining = evaluate(NOW + timedelta(milliseconds=1), NOW)
    assert remaining.is_expired is False
    assert remaining.total_seconds == 0


def test_past_deadline_never_goes_negative():
    remaining = evaluate(NOW - timedelta(days=3, seconds=7), NOW)
    assert remaining == EXPIRED
    assert min(remaining.days, remaining.hours, remaining.minutes, remaining.seconds) == 0


def test_missing_or_garbage_deadline_counts_as_expired():
    assert evaluate(None, NOW).is_expired
    assert evaluate("", NOW).is_expired
    assert evaluate("not-a-date", NOW).is_expired


def test_is_expired_matches_evaluate():
    for offset in (-5000, -1, 0, 1, 5000):
        deadline = NOW + timedelta(milliseconds=offset)
        assert is_expired(deadline, NOW) == evaluate(deadline, NOW).is_expired
        assert is_expired(deadline, NOW) == (offset <= 0)


def test_parse_deadline_accepts_supported_forms():
    expected = datetime(2025, 3, 1, 13, 0, 0, tzinfo=timezone.utc)

    assert parse_deadline("2025-03-01T13:00:00Z") == expected
    assert parse_deadline("2025-03-01T20:00:00+07:00") == expected
    assert parse_deadline(datetime(2025, 3, 1, 13, 0, 0)) == expected
    assert parse_deadline(to_epoch_ms(expected)) == expected
    assert parse_deadline(None) is None
    assert parse_deadline(True) is None


def test_epoch_millisecond_inputs():
    now_ms = to_epoch_ms(NOW)
    remaining = evaluate(now_ms + 61_000, now_ms)
    assert (remaining.minutes, remaining.seconds) == (1, 1)


def test_out_of_range_epoch_deadline_counts_as_expired():
    assert parse_deadline(10**20) is None
    assert evaluate(10**20, 0).is_expired
    assert evaluate(float("inf"), NOW).is_expired
