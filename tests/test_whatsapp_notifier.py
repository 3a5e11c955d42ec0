"""
Tests WhatsAppNotifier: kirim tunggal, retry, bulk + rate limit, kuota, grup.
"""

import threading
import time

import pytest

from conftest import FakeTransport
from wa_client import ImagePayload, TextPayload
from whatsapp_notifications import (
    DAILY_COUNTS_SETTING,
    ERROR_DAILY_LIMIT,
    ERROR_NOT_CONNECTED,
    NotificationJob,
    RateLimitSettings,
    WhatsAppNotifier,
)

TODAY = "2024-01-12"


def jobs(n):
    return [NotificationJob(phone_number=f"08{i:04d}", message=f"pesan {i}") for i in range(n)]


class TestSendNotification:
    def test_not_connected(self, settings, templates, sleep, clock):
        notifier = WhatsAppNotifier(settings, templates, sleep=sleep, clock=clock)
        assert notifier.send_notification("081", "hi") == {"success": False, "error": ERROR_NOT_CONNECTED}

    def test_wraps_header_and_footer(self, notifier, transport):
        result = notifier.send_notification("081234", "Isi pesan")

        assert result == {"success": True, "with_image": False}
        destination, payload = transport.sent[0]
        assert destination == "6281234"
        assert isinstance(payload, TextPayload)
        assert payload.text.startswith("HEADER\nIsi pesan")
        assert payload.text.endswith("FOOTER")

    def test_group_id_not_normalized(self, notifier, transport):
        notifier.send_notification("120363@g.us", "hi")
        assert transport.sent[0][0] == "120363@g.us"

    def test_success_counts_against_quota(self, notifier, settings):
        notifier.send_notification("081", "a")
        notifier.send_notification("082", "b")
        assert settings.data[DAILY_COUNTS_SETTING][TODAY] == 2
        assert notifier.quota.count_today() == 2

    def test_failure_does_not_count(self, settings, templates, sleep, clock):
        notifier = WhatsAppNotifier(settings, templates, transport=FakeTransport(always_fail=True), sleep=sleep, clock=clock)

        result = notifier.send_notification("081", "a")

        assert result == {"success": False, "error": "gateway timeout"}
        assert notifier.quota.count_today() == 0

    def test_counts_even_when_rate_limit_disabled(self, notifier, rate_limit):
        rate_limit(enabled=False, dailyMessageLimit=1)
        notifier.send_notification("081", "a")
        notifier.send_notification("082", "b")
        assert notifier.quota.count_today() == 2

    def test_daily_limit_short_circuits(self, notifier, settings, transport, rate_limit):
        rate_limit(dailyMessageLimit=2)
        settings.set_setting(DAILY_COUNTS_SETTING, {TODAY: 2})

        result = notifier.send_notification("081", "a")

        assert result == {"success": False, "error": ERROR_DAILY_LIMIT}
        assert transport.attempts == []

    def test_old_quota_dates_are_pruned(self, notifier, settings):
        settings.set_setting(DAILY_COUNTS_SETTING, {"2023-12-01": 50, "2024-01-10": 3})
        notifier.send_notification("081", "a")
        assert settings.data[DAILY_COUNTS_SETTING] == {"2024-01-10": 3, TODAY: 1}

    def test_image_sent_with_caption(self, notifier, transport, tmp_path):
        image = tmp_path / "promo.jpg"
        image.write_bytes(b"\xff\xd8")

        result = notifier.send_notification("081", "Promo", image_path=str(image))

        assert result == {"success": True, "with_image": True}
        payload = transport.sent[0][1]
        assert isinstance(payload, ImagePayload)
        assert payload.path == str(image)
        assert "Promo" in payload.caption

    def test_image_failure_falls_back_to_text(self, settings, templates, sleep, clock, tmp_path):
        image = tmp_path / "promo.jpg"
        image.write_bytes(b"\xff\xd8")
        transport = FakeTransport(fail_images=True)
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        result = notifier.send_notification("081", "Promo", image_path=str(image))

        assert result == {"success": True, "with_image": False}
        assert len(transport.attempts) == 2
        assert isinstance(transport.sent[0][1], TextPayload)
        assert notifier.quota.count_today() == 1

    def test_missing_image_file_sends_text(self, notifier, transport, tmp_path):
        result = notifier.send_notification("081", "Promo", image_path=str(tmp_path / "nope.jpg"))
        assert result["with_image"] is False
        assert isinstance(transport.attempts[0][1], TextPayload)


class TestRetry:
    def test_always_failing_transport_attempts_max_retries_plus_one(self, settings, templates, sleep, clock, rate_limit):
        rate_limit(maxRetries=3)
        transport = FakeTransport(always_fail=True)
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        result = notifier.send_notification_with_retry("081", "hi")

        assert result["success"] is False
        assert result["error"] == "gateway timeout"
        assert len(transport.attempts) == 4
        # jeda linear 2, 4, 6 detik
        assert sleep.calls == [2, 4, 6]

    def test_succeeds_after_transient_failure(self, settings, templates, sleep, clock):
        transport = FakeTransport(fail_first=1)
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        result = notifier.send_notification_with_retry("081", "hi")

        assert result["success"] is True
        assert len(transport.attempts) == 2
        assert sleep.calls == [2]

    def test_zero_retries(self, settings, templates, sleep, clock, rate_limit):
        rate_limit(maxRetries=0)
        transport = FakeTransport(always_fail=True)
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        notifier.send_notification_with_retry("081", "hi")

        assert len(transport.attempts) == 1
        assert sleep.calls == []

    def test_quota_error_not_retried(self, notifier, settings, sleep, rate_limit):
        rate_limit(dailyMessageLimit=1)
        settings.set_setting(DAILY_COUNTS_SETTING, {TODAY: 1})

        result = notifier.send_notification_with_retry("081", "hi")

        assert result["error"] == ERROR_DAILY_LIMIT
        assert sleep.calls == []


class TestBulk:
    def test_batches_and_delays(self, notifier, transport, sleep, rate_limit):
        rate_limit(maxMessagesPerBatch=2, delayBetweenMessages=1, delayBetweenBatches=5)

        summary = notifier.send_bulk_notifications(jobs(5))

        assert summary == {"success": 5, "failed": 0, "skipped": 0, "errors": []}
        # batch (2, 2, 1): jeda pesan di batch 1 & 2, jeda batch setelah batch 1 & 2
        assert sleep.calls == [1, 5, 1, 5]
        assert sleep.calls.count(1) == 2
        assert sleep.calls.count(5) == 2

    def test_preserves_input_order(self, notifier, transport):
        notifier.send_bulk_notifications(jobs(4))
        assert [d for d, _ in transport.sent] == ["6280000", "6280001", "6280002", "6280003"]

    def test_quota_exhausted_before_start_skips_everything(self, notifier, settings, transport, rate_limit):
        rate_limit(dailyMessageLimit=3)
        settings.set_setting(DAILY_COUNTS_SETTING, {TODAY: 3})

        summary = notifier.send_bulk_notifications(jobs(4))

        assert summary["skipped"] == 4
        assert summary["success"] == 0
        assert summary["failed"] == 0
        assert transport.attempts == []

    def test_quota_exhausted_mid_batch_stops_run(self, notifier, transport, rate_limit):
        rate_limit(dailyMessageLimit=2, maxMessagesPerBatch=3)

        summary = notifier.send_bulk_notifications(jobs(7))

        assert summary["success"] == 2
        assert summary["skipped"] == 5
        assert len(transport.sent) == 2

    def test_quota_exhausted_between_batches(self, notifier, transport, sleep, rate_limit):
        rate_limit(dailyMessageLimit=2, maxMessagesPerBatch=2)

        summary = notifier.send_bulk_notifications(jobs(5))

        assert summary == {"success": 2, "failed": 0, "skipped": 3, "errors": []}
        assert sleep.calls == [1, 5]

    def test_failures_are_collected_not_raised(self, settings, templates, sleep, clock, rate_limit):
        rate_limit(maxRetries=1)
        transport = FakeTransport(fail_for={"6280001"})
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        summary = notifier.send_bulk_notifications(jobs(3))

        assert summary["success"] == 2
        assert summary["failed"] == 1
        assert summary["errors"] == ["080001: gagal kirim ke 6280001"]

    def test_exception_in_send_counts_as_failed(self, notifier, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(notifier, "send_notification_with_retry", boom)

        summary = notifier.send_bulk_notifications(jobs(2))

        assert summary["failed"] == 2
        assert summary["errors"][0] == "080000: unexpected"

    def test_rate_limit_disabled_sends_without_delay(self, notifier, transport, sleep, rate_limit):
        rate_limit(enabled=False, maxMessagesPerBatch=1)

        summary = notifier.send_bulk_notifications(jobs(3))

        assert summary["success"] == 3
        assert sleep.calls == []

    def test_accepts_plain_dicts(self, notifier, transport):
        summary = notifier.send_bulk_notifications([{"phone_number": "081", "message": "hi"}])
        assert summary["success"] == 1
        assert transport.sent[0][0] == "6281"

    def test_no_transport_aborts(self, settings, templates, sleep, clock):
        notifier = WhatsAppNotifier(settings, templates, sleep=sleep, clock=clock)
        summary = notifier.send_bulk_notifications(jobs(3))
        assert summary == {"success": 0, "failed": 3, "skipped": 0, "errors": [ERROR_NOT_CONNECTED]}

    def test_empty(self, notifier, sleep):
        assert notifier.send_bulk_notifications([]) == {"success": 0, "failed": 0, "skipped": 0, "errors": []}


class TestGroups:
    def test_sends_to_each_group_with_delay(self, notifier, settings, transport, sleep):
        settings.set_setting("whatsapp_groups", ["111@g.us", "222@g.us"])
        settings.set_setting("technician_group_id", "222@g.us")

        summary = notifier.send_to_configured_groups("Job baru")

        assert summary["total"] == 2
        assert summary["sent"] == 2
        assert [d for d, _ in transport.sent] == ["111@g.us", "222@g.us"]
        assert sleep.calls == [1]

    def test_failure_does_not_abort_loop(self, settings, templates, sleep, clock):
        settings.set_setting("whatsapp_groups", "111@g.us, 222@g.us")
        transport = FakeTransport(fail_for={"111@g.us"})
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        summary = notifier.send_to_configured_groups("Job baru")

        assert summary["sent"] == 1
        assert summary["failed"] == 1
        assert transport.sent[0][0] == "222@g.us"

    def test_no_groups(self, notifier, transport):
        summary = notifier.send_to_configured_groups("x")
        assert summary["total"] == 0
        assert transport.attempts == []


class TestRateLimitSettings:
    def test_defaults(self):
        rl = RateLimitSettings.from_settings(None)
        assert rl.max_messages_per_batch == 10
        assert rl.max_retries == 2
        assert rl.enabled is True

    def test_form_values(self):
        rl = RateLimitSettings.from_settings({"maxMessagesPerBatch": "0", "enabled": "false", "maxRetries": "3"})
        assert rl.max_messages_per_batch == 1
        assert rl.enabled is False
        assert rl.max_retries == 3

    def test_read_fresh_every_time(self, notifier, rate_limit):
        assert notifier.rate_limit_settings().max_retries == 2
        rate_limit(maxRetries=5)
        assert notifier.rate_limit_settings().max_retries == 5

    @pytest.mark.parametrize("value", ["inf", "Infinity", float("nan")])
    def test_non_finite_delay_rejected(self, value):
        with pytest.raises(ValueError):
            RateLimitSettings.from_settings({"delayBetweenBatches": value})
        with pytest.raises(ValueError):
            RateLimitSettings.from_settings({"delayBetweenMessages": value})

    def test_broken_stored_value_falls_back_to_defaults(self, notifier, rate_limit, sleep):
        rate_limit(delayBetweenBatches=float("inf"), maxMessagesPerBatch=1)

        assert notifier.rate_limit_settings() == RateLimitSettings()

        summary = notifier.send_bulk_notifications(jobs(2))
        assert summary["success"] == 2
        assert sleep.calls == [2]


class SlowTransport(FakeTransport):
    """Transport yang menahan sebentar supaya thread saling tumpang tindih."""

    def send_message(self, destination, payload):
        time.sleep(0.01)
        return super().send_message(destination, payload)


def run_in_threads(target, count):
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(index):
        barrier.wait()
        results[index] = target(index)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


class TestQuotaConcurrency:
    def test_parallel_sends_never_exceed_limit(self, settings, templates, sleep, clock, rate_limit):
        rate_limit(dailyMessageLimit=3)
        transport = SlowTransport()
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        results = run_in_threads(lambda i: notifier.send_notification(f"08{i:04d}", "hi"), 10)

        successes = [r for r in results if r["success"]]
        assert len(successes) == 3
        assert all(r["error"] == ERROR_DAILY_LIMIT for r in results if not r["success"])
        assert len(transport.sent) == 3
        assert settings.data[DAILY_COUNTS_SETTING][TODAY] == 3

    def test_failed_send_releases_its_slot(self, settings, templates, sleep, clock, rate_limit):
        rate_limit(dailyMessageLimit=1)
        transport = FakeTransport(fail_for={"6280000"})
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        assert notifier.send_notification("080000", "gagal")["success"] is False
        assert notifier.quota.count_today() == 0

        assert notifier.send_notification("080001", "ok")["success"] is True
        assert notifier.quota.count_today() == 1

    def test_parallel_failures_release_slots(self, settings, templates, sleep, clock, rate_limit):
        rate_limit(dailyMessageLimit=10)
        failing = {f"628{i:04d}" for i in range(0, 10, 2)}
        transport = SlowTransport(fail_for=failing)
        notifier = WhatsAppNotifier(settings, templates, transport=transport, sleep=sleep, clock=clock)

        results = run_in_threads(lambda i: notifier.send_notification(f"08{i:04d}", "hi"), 10)

        assert sum(1 for r in results if r["success"]) == 5
        assert notifier.quota.count_today() == 5
