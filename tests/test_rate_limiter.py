"""Tests for the request pacer."""

import pytest

from serp_intel.utils.rate_limiter import RequestPacer


class TestRequestPacer:

    @pytest.mark.asyncio
    async def test_first_call_is_immediate(self, instant_pacer, fake_sleep):
        async with instant_pacer:
            pass
        assert fake_sleep.calls == []
        assert instant_pacer.calls_made == 1

    @pytest.mark.asyncio
    async def test_back_to_back_calls_are_spaced(self, instant_pacer, fake_sleep):
        for _ in range(3):
            async with instant_pacer:
                pass
        assert fake_sleep.calls == [pytest.approx(1.5), pytest.approx(1.5)]
        assert instant_pacer.calls_made == 3

    @pytest.mark.asyncio
    async def test_spacing_counts_from_end_of_previous_call(
        self, instant_pacer, fake_clock, fake_sleep
    ):
        async with instant_pacer:
            fake_clock.advance(5.0)  # slow request
        async with instant_pacer:
            pass
        assert fake_sleep.calls == [pytest.approx(1.5)]

    @pytest.mark.asyncio
    async def test_idle_time_is_credited(self, instant_pacer, fake_clock, fake_sleep):
        async with instant_pacer:
            pass
        fake_clock.advance(1.0)
        async with instant_pacer:
            pass
        assert fake_sleep.calls == [pytest.approx(0.5)]

    @pytest.mark.asyncio
    async def test_requests_per_minute_window(self, fake_clock, fake_sleep):
        pacer = RequestPacer(
            min_interval=0, requests_per_minute=2, clock=fake_clock, sleep=fake_sleep
        )
        for _ in range(3):
            await pacer.acquire()
        assert fake_sleep.calls == [pytest.approx(60.0)]

    @pytest.mark.asyncio
    async def test_zero_interval_never_sleeps(self, fake_clock, fake_sleep):
        pacer = RequestPacer(min_interval=0, clock=fake_clock, sleep=fake_sleep)
        for _ in range(5):
            async with pacer:
                pass
        assert fake_sleep.calls == []

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            RequestPacer(min_interval=-1)
        with pytest.raises(ValueError):
            RequestPacer(requests_per_minute=0)
