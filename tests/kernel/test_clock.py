"""Clock: stored instants vs business-local calendar dates."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from pharmacy_kernel.domain.clock import DeterministicClock, SystemClock


class TestBusinessTimezone:

    def test_today_follows_business_timezone(self):
        clock = DeterministicClock(
            datetime(2024, 6, 1, 20, 0, tzinfo=timezone.utc),
            business_tz="Asia/Ho_Chi_Minh",
        )

        assert clock.now().date() == date(2024, 6, 1)
        assert clock.today() == date(2024, 6, 2)
        assert clock.local_now().hour == 3

    def test_naive_time_is_already_local(self):
        clock = DeterministicClock(datetime(2024, 6, 1, 23, 30), business_tz="Asia/Ho_Chi_Minh")

        assert clock.local_now() == datetime(2024, 6, 1, 23, 30)
        assert clock.today() == date(2024, 6, 1)

    def test_explicit_zone_overrides_business_zone(self):
        clock = DeterministicClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))

        local = clock.local_now("Europe/Berlin")

        assert local.hour == 13
        assert local.tzinfo == ZoneInfo("Europe/Berlin")

    def test_system_clock_is_utc_aware(self):
        clock = SystemClock("Asia/Ho_Chi_Minh")

        assert clock.now().tzinfo is timezone.utc
        assert clock.local_now().utcoffset().total_seconds() == 7 * 3600


class TestDeterministicClock:

    def test_frozen_until_moved(self):
        clock = DeterministicClock(datetime(2024, 6, 1, 8, 0))

        assert clock.now() == clock.now()
        assert clock.tick() == datetime(2024, 6, 1, 8, 0, 1)

    def test_set_time_discards_previous_advance(self):
        clock = DeterministicClock(datetime(2024, 6, 1, 8, 0))
        clock.advance_days(3)
        clock.set_time(datetime(2024, 7, 1, 0, 0))

        assert clock.now() == datetime(2024, 7, 1, 0, 0)
