import pytest

from gpt_backend.config import Settings, load_settings
from gpt_backend.errors import RateLimitExceeded
from gpt_backend.rate_limit import RateWindow, SlidingWindowLimiter, default_windows


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "OpenAI")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("STREAM_RETRY_BASE_DELAY", "0.5")

    settings = load_settings()
    assert settings.llm_provider == "openai"
    assert settings.port == 8080
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
    assert settings.stream_retry_base_delay == 0.5
    assert settings.active_model == settings.openai_model


def test_default_windows_match_settings():
    windows = default_windows(Settings())
    assert [(w.limit, w.seconds) for w in windows] == [(15, 60), (250, 3600), (500, 86400)]


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_sliding_window_frees_up_over_time():
    clock = Clock()
    limiter = SlidingWindowLimiter([RateWindow(2, 60, "slow down")], clock=clock)

    limiter.hit("1.2.3.4")
    clock.now += 30
    limiter.hit("1.2.3.4")
    with pytest.raises(RateLimitExceeded, match="slow down"):
        limiter.hit("1.2.3.4")

    # Other clients are unaffected.
    limiter.hit("5.6.7.8")

    # The first hit leaves the window, the rejected one still counts.
    clock.now += 31
    with pytest.raises(RateLimitExceeded):
        limiter.hit("1.2.3.4")
    clock.now += 60
    limiter.hit("1.2.3.4")


def test_breach_stops_later_windows():
    clock = Clock()
    limiter = SlidingWindowLimiter(
        [RateWindow(1, 60, "minute"), RateWindow(5, 3600, "hour")], clock=clock
    )
    limiter.hit("ip")
    for _ in range(10):
        with pytest.raises(RateLimitExceeded, match="minute"):
            limiter.hit("ip")

    limiter.reset()
    limiter.hit("ip")
    assert len(limiter._hits[(1, "ip")]) == 1


def test_idle_clients_are_forgotten():
    clock = Clock()
    limiter = SlidingWindowLimiter(
        [RateWindow(5, 60, "minute"), RateWindow(50, 3600, "hour")], clock=clock
    )
    limiter.hit("10.0.0.1")
    assert (0, "10.0.0.1") in limiter._hits

    clock.now += 3601
    limiter.hit("10.0.0.2")

    assert not [key for key in limiter._hits if key[1] == "10.0.0.1"]
    assert len(limiter._hits[(1, "10.0.0.2")]) == 1


def test_sweep_keeps_clients_still_inside_a_window():
    clock = Clock()
    limiter = SlidingWindowLimiter(
        [RateWindow(5, 60, "minute"), RateWindow(50, 3600, "hour")], clock=clock
    )
    limiter.hit("10.0.0.1")
    clock.now += 120
    limiter.hit("10.0.0.2")

    assert (0, "10.0.0.1") not in limiter._hits
    assert len(limiter._hits[(1, "10.0.0.1")]) == 1
