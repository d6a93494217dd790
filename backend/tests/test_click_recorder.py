"""Tests for the asynchronous click recorder."""

import threading

import pytest

from shortlinks.database import utcnow
from shortlinks.models import Click
from shortlinks.services.click_recorder import (
    ClickEvent,
    ClickRecorder,
    DatabaseClickSink,
    referrer_domain,
)
from shortlinks.utils.geo import GeoData


class ListSink:
    """Sink that keeps events in memory"""

    def __init__(self):
        self.events = []
        self.lock = threading.Lock()

    def write(self, events):
        with self.lock:
            self.events.extend(events)


class FailingSink:
    def write(self, events):
        raise RuntimeError("analytics storage down")


def make_event(code="abc123", link_id=1, **overrides):
    values = {
        "link_id": link_id,
        "short_code": code,
        "domain": "",
        "timestamp": utcnow(),
    }
    values.update(overrides)
    return ClickEvent(**values)


class TestReferrerDomain:
    def test_host_extracted(self):
        assert referrer_domain("https://news.example.com/post?id=1") == "news.example.com"

    def test_empty(self):
        assert referrer_domain(None) is None
        assert referrer_domain("") is None


class TestClickRecorder:
    def test_flush_without_worker(self):
        sink = ListSink()
        recorder = ClickRecorder(sink)

        for i in range(5):
            recorder.record(make_event(code=f"code{i}"))

        assert recorder.flush()
        assert [e.short_code for e in sink.events] == [f"code{i}" for i in range(5)]
        assert recorder.stats() == {"queued": 0, "recorded": 5, "dropped": 0, "failed": 0}

    def test_overflow_drops_oldest(self):
        """A full queue drops its oldest event and counts the drop."""
        sink = ListSink()
        recorder = ClickRecorder(sink, max_queue_size=3)

        for i in range(5):
            recorder.record(make_event(code=f"code{i}"))

        stats = recorder.stats()
        assert stats["dropped"] == 2
        assert stats["queued"] == 3

        recorder.flush()
        assert [e.short_code for e in sink.events] == ["code2", "code3", "code4"]

    def test_batches_respect_batch_size(self):
        batches = []

        class BatchSink:
            def write(self, events):
                batches.append(len(events))

        recorder = ClickRecorder(BatchSink(), batch_size=4)
        for _ in range(10):
            recorder.record(make_event())
        recorder.flush()

        assert batches == [4, 4, 2]

    def test_sink_failure_is_counted(self):
        recorder = ClickRecorder(FailingSink())

        recorder.record(make_event())
        recorder.record(make_event())

        assert recorder.flush()
        stats = recorder.stats()
        assert stats["failed"] == 2
        assert stats["recorded"] == 0

    def test_worker_drains_queue(self):
        sink = ListSink()
        recorder = ClickRecorder(sink, batch_size=7)
        recorder.start()

        try:
            for i in range(50):
                recorder.record(make_event(code=f"code{i}"))
            assert recorder.flush(timeout=5)
        finally:
            recorder.stop()

        assert len(sink.events) == 50
        assert not recorder.running

    def test_stop_writes_remaining_events(self):
        sink = ListSink()
        recorder = ClickRecorder(sink)
        recorder.start()

        for _ in range(20):
            recorder.record(make_event())
        recorder.stop(timeout=5)

        assert len(sink.events) == 20
        assert recorder.stats()["queued"] == 0

    def test_invalid_queue_size(self):
        with pytest.raises(ValueError):
            ClickRecorder(ListSink(), max_queue_size=0)


class TestDatabaseClickSink:
    def test_events_written(self, store, make_link):
        link = store.put(make_link())
        sink = DatabaseClickSink(store)

        sink.write([
            make_event(link_id=link.id, client_ip="8.8.8.8", referrer="https://t.co/x", is_qr_click=True),
            make_event(link_id=link.id, client_ip="8.8.8.8"),
            make_event(link_id=link.id, client_ip="1.1.1.1", user_agent="Mozilla/5.0"),
        ])

        with store.read_session() as db:
            clicks = db.query(Click).filter(Click.link_id == link.id).order_by(Click.id).all()

        assert len(clicks) == 3
        assert clicks[0].referer_domain == "t.co"
        assert clicks[0].is_qr_click
        assert [c.is_unique for c in clicks] == [True, False, True]
        assert store.get_by_id(link.id).unique_clicks_count == 2

    def test_geo_lookup_applied(self, store, make_link):
        link = store.put(make_link())
        sink = DatabaseClickSink(
            store,
            geo_lookup=lambda ip: GeoData(country_code="DE", country_name="Germany", city="Berlin"),
        )

        sink.write([make_event(link_id=link.id, client_ip="5.6.7.8")])

        with store.read_session() as db:
            click = db.query(Click).filter(Click.link_id == link.id).one()

        assert click.country_code == "DE"
        assert click.city == "Berlin"
