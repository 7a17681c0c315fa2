from memogen.jobs.event_bus import EventBus
from memogen.models.memo_models import ContentMetadata
from memogen.models.memo_models import GenerationJob


def _job():
    return GenerationJob(template_id="t", metadata=ContentMetadata(asset_name="A", asset_type="Office"))


def test_publish_calls_handlers_in_subscription_order():
    bus = EventBus()
    job = _job()
    calls = []
    bus.subscribe(job.id, lambda j: calls.append("first"))
    bus.subscribe(job.id, lambda j: calls.append("second"))

    bus.publish(job)

    assert calls == ["first", "second"]


def test_each_handler_gets_its_own_copy():
    bus = EventBus()
    job = _job()
    seen = []

    def mutating(received):
        received.status_message = "tampered"
        seen.append(received)

    bus.subscribe(job.id, mutating)
    bus.subscribe(job.id, seen.append)
    bus.publish(job)

    assert seen[1].status_message is None
    assert job.status_message is None
    assert seen[0] is not seen[1]


def test_raising_handler_does_not_block_others():
    bus = EventBus()
    job = _job()
    received = []

    def broken(_job):
        raise RuntimeError("boom")

    bus.subscribe(job.id, broken)
    bus.subscribe(job.id, received.append)
    bus.publish(job)

    assert len(received) == 1


def test_unsubscribe_removes_first_match_and_tolerates_absent():
    bus = EventBus()
    job = _job()
    calls = []

    def handler(_job):
        calls.append(1)

    bus.subscribe(job.id, handler)
    bus.subscribe(job.id, handler)
    bus.unsubscribe(job.id, handler)
    assert bus.subscriber_count(job.id) == 1

    bus.publish(job)
    assert calls == [1]

    bus.unsubscribe(job.id, handler)
    bus.unsubscribe(job.id, handler)
    bus.unsubscribe("unknown", handler)
    assert bus.subscriber_count(job.id) == 0


def test_handlers_only_see_their_job():
    bus = EventBus()
    first, second = _job(), _job()
    received = []
    bus.subscribe(first.id, received.append)

    bus.publish(second)
    bus.publish(first)

    assert [job.id for job in received] == [first.id]


def test_late_subscriber_gets_no_replay():
    bus = EventBus()
    job = _job()
    early, late = [], []
    bus.subscribe(job.id, early.append)

    bus.publish(job)
    bus.subscribe(job.id, late.append)

    assert len(early) == 1
    assert late == []

    job.status_message = "next"
    bus.publish(job)
    assert [received.status_message for received in late] == ["next"]
