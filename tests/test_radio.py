"""
Tests for the smart skip radio controller.

Drives the full wiring (watchdog, mixer, connection manager, silence watchdog)
with fake players, a fake tap and virtual time. Crossfades run inline.
"""

import random

import pytest

from smart_skip.ad_watchdog import AdDetected, AdFinished
from smart_skip.player import PlayerEvent, Station
from smart_skip.radio import SmartSkipRadio
from tests.test_doubles import FakePlayer, RejectingPlayer

STATIONS = [
    Station("Alpha FM", "http://alpha.example.com/live", uuid="a"),
    Station("Beta Radio", "http://beta.example.com/live", uuid="b"),
    Station("Gamma Jazz", "http://gamma.example.com/live", uuid="c"),
]


class RadioHarness:

    def __init__(self, config, scheduler, tap, backup_pool=None, primary=None):
        self.primary = primary or FakePlayer("primary")
        self.backup = FakePlayer("backup")
        self.skips = []
        self.ad_events = []
        self.scheduler = scheduler
        self.tap = tap
        self.radio = SmartSkipRadio(self.primary, self.backup,
                                    config=config,
                                    tap=tap,
                                    backup_pool=backup_pool,
                                    scheduler=scheduler,
                                    on_skip=self.skips.append,
                                    on_ad_event=self.ad_events.append,
                                    fade_runner=lambda job: job(),
                                    sleep=lambda seconds: None,
                                    rng=random.Random(7))
        self.radio.set_stations(STATIONS)

    def start(self, index=0, smart_skip=True):
        self.radio.set_smart_skip_enabled(smart_skip)
        self.radio.play_station(index)
        self.radio.handle_player_event(PlayerEvent.READY)


@pytest.fixture
def harness(config, scheduler, tap):
    harness = RadioHarness(config, scheduler, tap)
    harness.start()
    return harness


class TestAdSkip:
    """Ad events crossfade to a backup and back."""

    def test_ad_detected_fades_to_backup(self, harness):
        harness.radio.handle_signal("AD_DETECTED")

        assert harness.radio.is_ad_skipping
        backup = harness.radio.backup_station
        assert backup is not None and backup.key != "a"
        assert harness.backup.source == backup.url
        assert harness.radio.mixer.on_backup
        assert harness.backup.volume == pytest.approx(0.75)
        assert harness.primary.volume == 0.0

    def test_primary_keeps_playing_for_monitoring(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        assert harness.primary.pause_calls == 0

    def test_duplicate_detection_is_ignored(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        harness.radio.handle_signal("AD_DETECTED")
        assert len(harness.backup.sources) == 1
        assert [type(e) for e in harness.ad_events] == [AdDetected]

    def test_ad_finished_returns_to_primary(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        harness.radio.handle_signal("AD_FINISHED")
        harness.radio.handle_signal("AD_FINISHED")

        assert not harness.radio.is_ad_skipping
        assert harness.radio.backup_station is None
        assert not harness.radio.mixer.on_backup
        assert harness.backup.source is None
        assert harness.primary.volume == pytest.approx(0.75)
        assert [type(e) for e in harness.ad_events] == [AdDetected, AdFinished]

    def test_finish_without_detection_is_a_no_op(self, harness):
        harness.radio.handle_signal("AD_FINISHED")
        assert harness.ad_events == []
        assert harness.backup.sources == []

    def test_watchdog_detection_drives_the_mixer(self, harness):
        for _ in range(3):
            harness.radio.watchdog.apply_classifier_reading(0.95, 0.01)
        harness.scheduler.advance(2)
        assert harness.radio.is_ad_skipping
        assert harness.radio.mixer.on_backup

    def test_disabled_smart_skip_ignores_signals(self, harness):
        harness.radio.set_smart_skip_enabled(False)
        harness.radio.handle_signal("AD_DETECTED")
        assert not harness.radio.is_ad_skipping

    def test_disabling_mid_skip_returns_to_primary(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        harness.radio.set_smart_skip_enabled(False)
        assert not harness.radio.is_ad_skipping
        assert not harness.radio.mixer.on_backup
        assert harness.primary.volume == pytest.approx(0.75)
        assert harness.scheduler.active_tasks() == ['silence']

    def test_unknown_signal_is_ignored(self, harness):
        harness.radio.handle_signal("SOMETHING_ELSE")
        assert not harness.radio.is_ad_skipping


class TestBackupSelection:
    """Random backup excluding the current station."""

    def test_pool_without_alternatives_means_no_skip(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap, backup_pool=lambda: [STATIONS[0]])
        harness.start()
        harness.radio.handle_signal("AD_DETECTED")
        assert not harness.radio.is_ad_skipping
        assert harness.backup.sources == []

    def test_current_station_is_never_chosen(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap, backup_pool=lambda: STATIONS[:2])
        harness.start()
        for _ in range(5):
            harness.radio.handle_signal("AD_DETECTED")
            assert harness.radio.backup_station.key == "b"
            harness.radio.handle_signal("AD_FINISHED")


class TestSkips:
    """Connection failures and dead air move to the next station."""

    def test_connection_timeout_skips(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap)
        harness.radio.play_station(0)
        scheduler.advance(7)
        assert harness.skips == ["timeout"]
        assert harness.radio.current_station.key == "a"
        scheduler.advance(1)
        assert harness.radio.current_station.key == "b"

    def test_silence_skips_after_seven_seconds_with_smart_skip(self, harness):
        harness.scheduler.advance(6)
        assert harness.skips == []
        harness.scheduler.advance(1)
        assert harness.skips == ["silence"]
        harness.scheduler.advance(1)
        assert harness.radio.current_station.key == "b"

    def test_rejecting_stations_are_skipped_one_at_a_time(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap, primary=RejectingPlayer("primary"))
        harness.radio.play_station(0)

        assert harness.skips == ["unavailable"]
        assert harness.primary.play_calls == 3
        assert harness.radio.current_station.key == "a"
        assert scheduler.is_scheduled("skip")

        scheduler.advance(1)
        assert harness.radio.current_station.key == "b"
        assert harness.primary.play_calls == 6

        scheduler.advance(3)
        assert len(harness.skips) == 5
        assert harness.primary.play_calls == 15

        harness.radio.stop()
        assert scheduler.active_tasks() == []

    def test_single_rejecting_station_keeps_retrying(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap, primary=RejectingPlayer("primary"))
        harness.radio.set_stations(STATIONS[:1])
        harness.radio.play_station(0)
        scheduler.advance(2)
        assert harness.skips == ["unavailable"] * 3
        assert harness.radio.current_station.key == "a"
        assert harness.radio.is_playing

    def test_pending_skip_absorbs_further_requests(self, harness):
        harness.radio.handle_player_event(PlayerEvent.STALLED)
        harness.scheduler.advance(5)
        harness.radio._request_skip("silence")
        assert harness.skips == ["stall"]
        harness.scheduler.advance(1)
        assert harness.radio.current_station.key == "b"

    def test_manual_change_cancels_pending_skip(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap)
        harness.radio.play_station(0)
        scheduler.advance(7)
        harness.radio.play_station(2)
        assert not scheduler.is_scheduled("skip")
        scheduler.advance(0.5)
        assert harness.radio.current_station.key == "c"

    def test_silence_waits_ten_seconds_without_smart_skip(self, config, scheduler, tap):
        harness = RadioHarness(config, scheduler, tap)
        harness.start(smart_skip=False)
        scheduler.advance(9)
        assert harness.skips == []
        scheduler.advance(1)
        assert harness.skips == ["silence"]

    def test_silence_suppressed_while_skipping(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        harness.scheduler.advance(20)
        assert harness.skips == []

    def test_next_station_ends_skip_and_wraps(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        harness.radio.next_station()
        assert not harness.radio.is_ad_skipping
        assert not harness.radio.mixer.on_backup
        assert harness.backup.source is None
        assert harness.tap.reset_calls >= 2

        harness.radio.next_station()
        harness.radio.next_station()
        assert harness.radio.current_station.key == "a"

    def test_prev_station_wraps(self, harness):
        harness.radio.prev_station()
        assert harness.radio.current_station.key == "c"


class TestInputsAndStatus:

    def test_metadata_reaches_watchdog(self, harness):
        harness.radio.handle_player_event(PlayerEvent.METADATA, "Daft Punk - One More Time")
        assert harness.radio.watchdog.get_state().last_metadata == "Daft Punk - One More Time"

    def test_new_station_is_not_scored_on_old_metadata(self, harness):
        harness.radio.handle_player_event(PlayerEvent.METADATA, "Traffic and weather on the eights")
        harness.radio.play_station(1)
        harness.radio.handle_player_event(PlayerEvent.READY)
        harness.scheduler.advance(2)

        state = harness.radio.watchdog.get_state()
        assert state.last_metadata is None
        assert not state.ever_received_metadata
        assert state.confidence_score == 0
        assert not harness.scheduler.is_scheduled("debounce")

    def test_enabling_smart_skip_keeps_current_metadata(self, harness):
        harness.radio.set_smart_skip_enabled(False)
        harness.radio.handle_player_event(PlayerEvent.METADATA, "Daft Punk - One More Time")
        harness.radio.set_smart_skip_enabled(True)
        assert harness.radio.watchdog.get_state().last_metadata == "Daft Punk - One More Time"

    def test_signal_status(self, harness):
        harness.radio.set_signal_status("connected")
        assert harness.radio.signal_status == "CONNECTED"
        with pytest.raises(ValueError):
            harness.radio.set_signal_status("HALF_OPEN")

    def test_volume_is_clamped(self, harness):
        harness.radio.set_volume(150)
        assert harness.radio.volume == 100
        assert harness.primary.volume == 1.0

    def test_stop_clears_every_timer(self, harness):
        harness.radio.stop()
        harness.radio.stop()
        assert harness.scheduler.active_tasks() == []
        assert harness.primary.source is None

    def test_status_snapshot(self, harness):
        harness.radio.handle_signal("AD_DETECTED")
        status = harness.radio.get_status()
        assert status['station'] == "Alpha FM"
        assert status['ad_skipping']
        assert status['backup_station'] in ("Beta Radio", "Gamma Jazz")
        assert status['connected']
        assert status['silence_count'] == 0
        assert status['signal_status'] == "DISCONNECTED"
