from timeviz.services.resize import ResizeCoalescer


def _coalescer(timers, debounce_ms=90):
    commits = []
    return ResizeCoalescer(lambda w, h: commits.append((w, h)), timers, debounce_ms), commits


def test_burst_commits_last_size_once(timers):
    coalescer, commits = _coalescer(timers)
    for width in range(400, 800, 50):
        coalescer.notify(width, 300)
        timers.advance(20)
    assert commits == []
    assert coalescer.pending_count() == 8
    assert timers.active_count() == 1
    timers.advance(90)
    assert commits == [(750, 300)]
    assert coalescer.pending_count() == 0
    assert timers.active_count() == 0


def test_separate_bursts_commit_separately(timers):
    coalescer, commits = _coalescer(timers)
    coalescer.notify(500, 300)
    timers.advance(100)
    coalescer.notify(600, 300)
    timers.advance(100)
    assert commits == [(500, 300), (600, 300)]
    assert coalescer.commits == 2


def test_force_commit_and_cancel(timers):
    coalescer, commits = _coalescer(timers)
    coalescer.notify(640, 480)
    coalescer.force_commit()
    assert commits == [(640, 480)]
    assert timers.active_count() == 0
    coalescer.force_commit()
    assert commits == [(640, 480)]
    coalescer.notify(1, 1)
    coalescer.cancel()
    timers.advance(500)
    assert commits == [(640, 480)]


def test_debounce_is_clamped(timers):
    assert _coalescer(timers, 0)[0].debounce_ms == 10
    assert _coalescer(timers, 10_000)[0].debounce_ms == 1000
    assert ResizeCoalescer(lambda w, h: None, timers).debounce_ms == 90
