import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from services.auto_send_scheduler import AutoSendScheduler, compose_message
from utils.dates import add_one_month
from helpers import FakeChannel, ManualSleep, RecordingSleep, settle


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def scheduler(lifecycle, channel, documents, clock, sleep):
    return AutoSendScheduler(
        lifecycle=lifecycle,
        channel=channel,
        documents=documents,
        check_interval=600,
        send_delay=600,
        initial_delay=60,
        clock=clock,
        sleep=sleep,
    )


def arm(make_invoice, clock, count, **fields):
    return [
        make_invoice(auto_send_enabled=True, next_send_date=clock.now - timedelta(days=count - i), **fields)
        for i in range(count)
    ]


async def test_pacing_and_partial_failure(scheduler, make_invoice, channel, sleep, repo, clock):
    first, second, third = arm(make_invoice, clock, 3)
    channel.failing.add(second.client_phone)

    report = await scheduler.run_pass(clock.now)

    assert sleep.calls == [600, 600]
    assert report.sent == [first.invoice_number, third.invoice_number]
    assert list(report.failed) == [second.invoice_number]
    assert repo.get(first.id).next_send_date == add_one_month(first.next_send_date)
    assert repo.get(second.id).next_send_date == second.next_send_date
    assert repo.get(second.id).last_sent_at is None
    assert repo.get(third.id).last_sent_at == clock.now


async def test_sends_advance_by_one_calendar_month(scheduler, make_invoice, repo, clock):
    invoice = make_invoice(auto_send_enabled=True, next_send_date=utc(2026, 1, 31, 9))
    clock.now = utc(2026, 2, 1, 9)

    await scheduler.run_pass()

    assert repo.get(invoice.id).next_send_date == utc(2026, 2, 28, 9)


async def test_single_batch_has_no_delay(scheduler, make_invoice, sleep, clock):
    arm(make_invoice, clock, 1)
    report = await scheduler.run_pass()
    assert len(report.sent) == 1
    assert sleep.calls == []


async def test_empty_pass(scheduler, channel, sleep):
    report = await scheduler.run_pass()
    assert report.due == 0
    assert channel.sent == []
    assert sleep.calls == []
    assert not scheduler.is_processing


async def test_message_names_invoice_client_and_amount(scheduler, make_invoice, channel, clock):
    invoice, = arm(make_invoice, clock, 1, client="Acme LLC")
    await scheduler.run_pass()

    recipient, text, path = channel.sent[0]
    assert recipient == invoice.client_phone
    assert text == compose_message(invoice)
    assert f"No. {invoice.invoice_number}" in text
    assert "Acme LLC" in text
    assert "15,000.00" in text
    assert path.name.startswith(f"Invoice_{invoice.invoice_number}_")


async def test_phone_is_normalised_before_sending(scheduler, make_invoice, channel, clock):
    arm(make_invoice, clock, 1, client_phone="8 (912) 345-67-89")
    await scheduler.run_pass()
    assert channel.sent[0][0] == "79123456789"


async def test_missing_recipient_is_skipped(scheduler, make_invoice, channel, repo, clock):
    no_phone, ok = arm(make_invoice, clock, 2)
    repo.rows[no_phone.id].client_phone = ""

    report = await scheduler.run_pass()

    assert "no client phone" in report.failed[no_phone.invoice_number]
    assert report.sent == [ok.invoice_number]
    assert repo.get(no_phone.id).next_send_date == no_phone.next_send_date


async def test_missing_document_is_skipped(scheduler, make_invoice, documents, repo, clock):
    missing, ok = arm(make_invoice, clock, 2)
    del documents.rendered[missing.invoice_number]

    report = await scheduler.run_pass()

    assert "not found" in report.failed[missing.invoice_number]
    assert report.sent == [ok.invoice_number]
    assert repo.get(missing.id).last_sent_at is None


async def test_failed_invoice_is_retried_next_pass(scheduler, make_invoice, channel, clock):
    invoice, = arm(make_invoice, clock, 1)
    channel.failing.add(invoice.client_phone)
    assert (await scheduler.run_pass()).failed

    channel.failing.clear()
    clock.advance(minutes=10)
    assert (await scheduler.run_pass()).sent == [invoice.invoice_number]


async def test_unexpected_channel_error_does_not_abort_pass(scheduler, make_invoice, channel, clock):
    broken, ok = arm(make_invoice, clock, 2)
    send = channel.send_document

    async def explode(recipient, text, path):
        if recipient == broken.client_phone:
            raise ConnectionError("socket closed")
        return await send(recipient, text, path)

    channel.send_document = explode
    report = await scheduler.run_pass()

    assert "socket closed" in report.failed[broken.invoice_number]
    assert report.sent == [ok.invoice_number]


async def test_overlapping_pass_is_dropped(lifecycle, documents, make_invoice, clock):
    release = asyncio.Event()
    started = asyncio.Event()

    class SlowChannel(FakeChannel):
        async def send_document(self, recipient, text, path):
            started.set()
            await release.wait()
            return await super().send_document(recipient, text, path)

    channel = SlowChannel()
    scheduler = AutoSendScheduler(lifecycle, channel, documents, clock=clock, sleep=RecordingSleep())
    invoice, = arm(make_invoice, clock, 1)

    first = asyncio.create_task(scheduler.run_pass())
    await started.wait()
    second = await scheduler.run_pass()

    assert second.skipped
    assert scheduler.is_processing
    release.set()
    report = await first

    assert report.sent == [invoice.invoice_number]
    assert len(channel.sent) == 1
    assert not scheduler.is_processing


async def test_guard_released_when_due_query_fails(scheduler, lifecycle, monkeypatch):
    def broken(now=None):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(lifecycle, "due_for_auto_send", broken)
    with pytest.raises(RuntimeError):
        await scheduler.run_pass()
    assert not scheduler.is_processing


async def test_loop_ticks_and_stop_lets_pass_finish(lifecycle, documents, make_invoice, clock):
    sleep = ManualSleep()
    channel = FakeChannel()
    scheduler = AutoSendScheduler(
        lifecycle, channel, documents,
        check_interval=600, send_delay=300, initial_delay=60,
        clock=clock, sleep=sleep,
    )
    arm(make_invoice, clock, 2)

    scheduler.start()
    await settle()
    assert scheduler.is_running
    assert sleep.calls == [60]

    sleep.release_all()
    await settle()
    # next tick scheduled, pass paused between the two sends
    assert sorted(sleep.calls) == [60, 300, 600]
    assert len(channel.sent) == 1

    scheduler.stop()
    assert not scheduler.is_running
    sleep.release_all()
    await settle()

    assert len(channel.sent) == 2
    assert not scheduler.is_processing
    assert sorted(sleep.calls) == [60, 300, 600]


async def test_failed_pass_keeps_loop_running(lifecycle, documents, clock, monkeypatch):
    sleep = ManualSleep()
    scheduler = AutoSendScheduler(lifecycle, FakeChannel(), documents, clock=clock, sleep=sleep)
    calls = []

    def broken(now=None):
        calls.append(now)
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(lifecycle, "due_for_auto_send", broken)
    scheduler.start()
    await settle()
    sleep.release_all()
    await settle()
    sleep.release_all()
    await settle()

    assert len(calls) == 2
    assert scheduler.is_running
    scheduler.stop()
    await settle()


async def test_check_now_runs_in_background(scheduler, make_invoice, channel, clock):
    arm(make_invoice, clock, 1)

    assert scheduler.check_now()
    await settle()

    assert len(channel.sent) == 1
    assert scheduler.last_report.sent


async def test_status_reports_fresh_due_count(scheduler, make_invoice, clock):
    arm(make_invoice, clock, 2)
    make_invoice(auto_send_enabled=True, next_send_date=clock.now + timedelta(days=1))

    status = scheduler.status()

    assert status["due_count"] == 2
    assert status["is_running"] is False
    assert status["is_processing"] is False
    assert status["check_interval"] == 600
    assert status["send_delay"] == 600


async def test_invoice_paid_during_pass_is_reported_once(lifecycle, documents, make_invoice, repo, clock):
    first, second = arm(make_invoice, clock, 2)
    channel = FakeChannel()

    async def pay_second_while_waiting(seconds):
        lifecycle.set_payment_status(second.id, True)

    scheduler = AutoSendScheduler(lifecycle, channel, documents, clock=clock, sleep=pay_second_while_waiting)
    report = await scheduler.run_pass()

    assert report.sent == [first.invoice_number, second.invoice_number]
    assert report.failed == {}
    stored = repo.get(second.id)
    assert stored.paid
    assert not stored.auto_send_enabled and stored.next_send_date is None


async def test_store_lookups_run_off_the_event_loop(scheduler, lifecycle, make_invoice, clock, monkeypatch):
    arm(make_invoice, clock, 1)
    loop_thread = threading.get_ident()
    threads = []

    for name in ("due_for_auto_send", "advance_next_send_date"):
        real = getattr(lifecycle, name)

        def recorded(*args, _real=real):
            threads.append(threading.get_ident())
            return _real(*args)

        monkeypatch.setattr(lifecycle, name, recorded)

    report = await scheduler.run_pass()

    assert len(report.sent) == 1
    assert len(threads) == 2
    assert loop_thread not in threads
