import pytest

from core.progress import ProgressHub, ProgressSink
from model.job import Job


@pytest.fixture
async def sink(jobs):
    job = await jobs.create(Job(id="j1", sourceRef="f1", targetFormat="png"))
    return ProgressSink(job, jobs, ProgressHub())


async def test_progress_never_decreases(sink, jobs):
    await sink.advance("converting", 50)
    await sink.advance("converting", 40)
    stored = await jobs.get("j1")
    assert (stored.status, stored.progress) == ("converting", 50)


async def test_status_never_moves_backwards(sink):
    await sink.advance("uploading", 70)
    job = await sink.advance("downloading", 10)
    assert job.status == "uploading"


async def test_error_keeps_progress_and_is_final(sink, jobs):
    await sink.advance("converting", 42)
    await sink.fail("boom")
    await sink.advance("uploading", 70)
    await sink.complete("r1")

    stored = await jobs.get("j1")
    assert stored.status == "error"
    assert stored.progress == 42
    assert stored.errorDetail == "boom"
    assert stored.resultRef is None


async def test_complete_sets_result_and_full_progress(sink, jobs):
    await sink.complete("r1")
    stored = await jobs.get("j1")
    assert (stored.status, stored.progress, stored.resultRef) == ("completed", 100, "r1")


async def test_hub_fans_out_to_subscribers(jobs):
    hub = ProgressHub()
    job = await jobs.create(Job(id="j2", sourceRef="f1", targetFormat="png"))
    q = hub.subscribe("j2")
    sink = ProgressSink(job, jobs, hub)

    await sink.advance("downloading", 10)
    await sink.advance("downloading", 10)
    published = q.get_nowait()
    assert (published.status, published.progress) == ("downloading", 10)
    assert q.empty()

    hub.unsubscribe("j2", q)
    assert hub.subscriber_count("j2") == 0
