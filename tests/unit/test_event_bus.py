from pathlib import Path
from vbconv.domain.events import Event, JobEvent, JobInfo, JobStarted
from vbconv.domain.models import ConversionMode
from vbconv.infrastructure.event_bus import EventBus


def test_publish_to_subscriber():
    bus = EventBus()
    received = []
    bus.subscribe(JobInfo, received.append)

    event = JobInfo(file_path=Path("a.mkv"), message="hello")
    bus.publish(event)

    assert received == [event]


def test_subscribers_of_base_class_receive_subclasses():
    bus = EventBus()
    all_events, job_events, infos = [], [], []
    bus.subscribe(Event, all_events.append)
    bus.subscribe(JobEvent, job_events.append)
    bus.subscribe(JobInfo, infos.append)

    bus.publish(JobStarted(file_path=Path("a.mkv"), cmdline="ffmpeg", mode=ConversionMode.COPY, encoder="copy"))
    bus.publish(JobInfo(file_path=Path("a.mkv"), message="x"))

    assert len(all_events) == 2
    assert len(job_events) == 2
    assert len(infos) == 1


def test_unrelated_subscribers_are_not_called():
    bus = EventBus()
    received = []
    bus.subscribe(JobStarted, received.append)

    bus.publish(JobInfo(file_path=Path("a.mkv"), message="x"))

    assert received == []


def test_callback_may_publish():
    bus = EventBus()
    received = []

    def relay(event):
        received.append(event)
        if event.message == "first":
            bus.publish(JobInfo(file_path=event.file_path, message="second"))

    bus.subscribe(JobInfo, relay)
    bus.publish(JobInfo(file_path=Path("a.mkv"), message="first"))

    assert [e.message for e in received] == ["first", "second"]
