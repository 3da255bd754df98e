from promo_core.ops_actions import analyze_ops_history, build_caps_diff
from promo_core.schemas import OpsRun, PromoQueue


def _run(duration_ms: int = 60000, **fields) -> OpsRun:
    data = {"totalDurationMs": duration_ms, "batchOk": True}
    data.update(fields)
    return OpsRun.from_dict(data)


def test_empty_history_yields_no_actions() -> None:
    assert analyze_ops_history([], {"enabled": False}) == []


def test_cache_warning_below_threshold() -> None:
    history = [
        _run(costStats={"adapterBreakdown": {"github": {"calls": 10, "cached": 5}, "npm": {"calls": 10, "cached": 9}}}),
    ]

    actions = analyze_ops_history(history)

    assert len(actions) == 1
    assert actions[0].category == "cache"
    assert actions[0].message == 'Adapter "github" cache hit rate is 50% (below 70% threshold)'


def test_cache_threshold_is_configurable() -> None:
    history = [_run(costStats={"adapterBreakdown": {"github": {"calls": 10, "cached": 5}}})]

    assert analyze_ops_history(history, cache_hit_warning_rate=0.5) == []


def test_top_error_codes_with_runbook() -> None:
    history = [
        _run(errorCodes={"RATE_LIMIT": 3, "WEIRD": 1}),
        _run(errorCodes={"TIMEOUT": 2, "NETWORK": 1, "RATE_LIMIT": 1}),
    ]

    actions = [a for a in analyze_ops_history(history) if a.category == "errors"]

    assert [a.message for a in actions] == [
        'Error code "RATE_LIMIT" occurred 4 time(s) in recent runs',
        'Error code "TIMEOUT" occurred 2 time(s) in recent runs',
        'Error code "WEIRD" occurred 1 time(s) in recent runs',
    ]
    assert actions[0].action == "Increase maxAgeHours to use more cached results"
    assert actions[2].action == "Check workflow logs for details"


def test_promotion_disabled_with_queue_and_unworthy_slug() -> None:
    queue = PromoQueue.from_dict({"slugs": ["alpha", {"slug": "beta"}]})
    worthy = {"repos": {"alpha": {"worthy": True}, "beta": {"worthy": False}}}

    actions = analyze_ops_history([_run()], {"enabled": False}, queue, worthy)

    assert [(a.level, a.category) for a in actions] == [
        ("info", "promotion"),
        ("warning", "promotion"),
        ("warning", "worthy"),
    ]
    assert "2 slug(s) queued (alpha, beta)" in actions[1].message
    assert '"beta"' in actions[2].message


def test_duration_spike() -> None:
    history = [_run(300000), _run(60000), _run(60000)]

    actions = analyze_ops_history(history)

    assert len(actions) == 1
    assert actions[0].message == "Latest run took 300s - more than 2x the average (60s)"


def test_only_recent_runs_are_read() -> None:
    history = [_run() for _ in range(5)] + [_run(errorCodes={"PARSE": 9})]

    assert analyze_ops_history(history, recent_count=5) == []


def test_caps_diff_against_latest_snapshot() -> None:
    promo = {"enabled": True, "caps": {"maxNamesPerRun": 20, "failMode": "fail-closed"}}
    history = [_run(capsSnapshot={"maxNamesPerRun": 10, "failMode": "fail-closed"})]

    diff = build_caps_diff(promo, history)

    assert diff["maxNamesPerRun"].changed is True
    assert diff["maxNamesPerRun"].current == 20
    assert diff["failMode"].changed is False
    assert diff["promoEnabled"].changed is False
    assert build_caps_diff(promo, [])["maxNamesPerRun"].changed is False
