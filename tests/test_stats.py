from datetime import datetime, timezone

import pytest

from promo_core.result import Result
from promo_core.stats import (
    days_between,
    iso_week,
    mean,
    median,
    parse_timestamp,
    percentile_nearest_rank,
    population_stddev,
    round_half_up,
    round_int,
)


def test_round_half_up_rounds_ties_upward() -> None:
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(2.5) == 3
    assert round_int(0.5) == 1
    assert round_int(1.49) == 1


def test_p95_nearest_rank_over_ten_values() -> None:
    durations = [60000 * i for i in range(1, 11)]

    assert percentile_nearest_rank(durations, 0.95) == 600000


def test_empty_inputs() -> None:
    assert mean([]) == 0.0
    assert median([]) is None
    assert percentile_nearest_rank([]) == 0
    assert population_stddev([]) == 0.0


def test_median_and_stddev() -> None:
    assert median([3, 1, 2]) == 2
    assert median([4, 1, 3, 2]) == 2.5
    assert population_stddev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)


def test_parse_timestamp_variants() -> None:
    assert parse_timestamp("2026-01-05T10:00:00Z") == datetime(2026, 1, 5, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2026-01-05") == datetime(2026, 1, 5, tzinfo=timezone.utc)
    assert parse_timestamp("yesterday") is None
    assert parse_timestamp(None) is None


def test_days_between_and_iso_week() -> None:
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    end = datetime(2026, 1, 8, 12, tzinfo=timezone.utc)

    assert days_between(start, end) == 7.5
    assert iso_week(datetime(2026, 1, 1, tzinfo=timezone.utc)) == "2026-W01"


def test_result_helpers() -> None:
    ok = Result.success([1])
    bad: Result[list[int]] = Result.failure("boom")

    assert ok.ok and ok.unwrap() == [1]
    assert not bad.ok
    assert bad.unwrap_or([]) == []
    assert bad.with_label("search").error == "search: boom"
    assert ok.with_label("search") is ok
    with pytest.raises(RuntimeError):
        bad.unwrap()
