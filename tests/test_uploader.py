"""Tests for the batched report uploader."""

import asyncio

import pytest

from community_low.client.config import ClientConfig
from community_low.client.uploader import BatchedReportUploader, UploaderState
from community_low.errors import UpstreamUnavailable


class RecordingSender:
    def __init__(self, fail: bool = False):
        self.batches = []
        self.fail = fail

    async def __call__(self, batch):
        self.batches.append(list(batch))
        if self.fail:
            raise UpstreamUnavailable("ingest returned HTTP 503", status_code=503)


def make_config(**overrides):
    values = dict(base_url="http://community.test", flush_interval_seconds=0.05, max_batch=100)
    values.update(overrides)
    return ClientConfig(**values)


def item(i):
    return {"prodId": f"P{i}", "price": 100 + i}


async def test_debounce_sends_one_batch():
    sender = RecordingSender()
    uploader = BatchedReportUploader(make_config(), sender)

    for i in range(3):
        uploader.enqueue(item(i))

    assert uploader.state is UploaderState.ARMED
    assert sender.batches == []

    await asyncio.sleep(0.2)

    assert sender.batches == [[item(0), item(1), item(2)]]
    assert uploader.state is UploaderState.IDLE
    assert uploader.pending == 0


async def test_full_queue_flushes_immediately():
    sender = RecordingSender()
    uploader = BatchedReportUploader(make_config(max_batch=3, flush_interval_seconds=60), sender)

    for i in range(3):
        uploader.enqueue(item(i))

    assert uploader.pending == 0
    assert uploader.state is UploaderState.FLUSHING

    await uploader.aclose()

    assert sender.batches == [[item(0), item(1), item(2)]]
    assert uploader.state is UploaderState.IDLE


async def test_queue_never_exceeds_max_batch():
    sender = RecordingSender()
    uploader = BatchedReportUploader(make_config(max_batch=5, flush_interval_seconds=60), sender)

    for i in range(23):
        uploader.enqueue(item(i))
        assert uploader.pending < 5

    await uploader.aclose()

    assert [len(batch) for batch in sender.batches] == [5, 5, 5, 5, 3]
    assert [entry for batch in sender.batches for entry in batch] == [item(i) for i in range(23)]


async def test_concurrent_enqueues_are_delivered_once():
    sender = RecordingSender()
    uploader = BatchedReportUploader(make_config(max_batch=100), sender)

    async def produce(i):
        await asyncio.sleep(0)
        uploader.enqueue(item(i))

    await asyncio.gather(*(produce(i) for i in range(250)))
    await asyncio.sleep(0.2)
    await uploader.aclose()

    delivered = [entry["prodId"] for batch in sender.batches for entry in batch]
    assert sorted(delivered) == sorted(f"P{i}" for i in range(250))
    assert all(len(batch) <= 100 for batch in sender.batches)


async def test_failed_batch_is_dropped():
    sender = RecordingSender(fail=True)
    uploader = BatchedReportUploader(make_config(), sender)

    uploader.enqueue(item(1))
    await asyncio.sleep(0.2)

    assert len(sender.batches) == 1
    assert uploader.pending == 0
    assert uploader.state is UploaderState.IDLE

    sender.fail = False
    uploader.enqueue(item(2))
    await uploader.aclose()
    assert sender.batches[-1] == [item(2)]


@pytest.mark.parametrize("config", [make_config(base_url=""), make_config(use_community=False)])
async def test_disabled_reporting_drops_items(config):
    sender = RecordingSender()
    uploader = BatchedReportUploader(config, sender)

    uploader.enqueue(item(1))
    await uploader.aclose()

    assert sender.batches == []
    assert uploader.state is UploaderState.IDLE


async def test_flush_on_empty_queue_is_noop():
    uploader = BatchedReportUploader(make_config(), RecordingSender())
    assert uploader.flush() is None
    assert uploader.state is UploaderState.IDLE
