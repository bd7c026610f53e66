"""Tests for the in-memory queue client."""
from quizduel.utils.queue_client import QueueClient

QUEUE = "test_queue"


def test_reserve_returns_items_in_fifo_order():
    queue = QueueClient()
    queue.push(QUEUE, {"n": 1})
    queue.push(QUEUE, {"n": 2})

    assert queue.length(QUEUE) == 2
    assert queue.reserve(QUEUE) == {"n": 1}
    assert queue.reserve(QUEUE) == {"n": 2}
    assert queue.reserve(QUEUE) is None


def test_reserved_items_wait_on_processing_list_until_acked():
    queue = QueueClient()
    queue.push(QUEUE, {"n": 1})

    item = queue.reserve(QUEUE)

    assert queue.length(QUEUE) == 0
    assert queue.length(queue.processing_name(QUEUE)) == 1
    assert queue.ack(QUEUE, item) is True
    assert queue.length(queue.processing_name(QUEUE)) == 0
    assert queue.ack(QUEUE, item) is False


def test_restore_unacked_requeues_at_the_front():
    queue = QueueClient()
    queue.push(QUEUE, {"n": 1})
    queue.push(QUEUE, {"n": 2})
    queue.push(QUEUE, {"n": 3})
    queue.reserve(QUEUE)
    queue.reserve(QUEUE)

    restored = queue.restore_unacked(QUEUE)

    assert restored == 2
    assert [queue.reserve(QUEUE) for _ in range(3)] == [{"n": 1}, {"n": 2}, {"n": 3}]


def test_peek_and_clear():
    queue = QueueClient()
    queue.push(QUEUE, {"n": 1})
    queue.reserve(QUEUE)
    queue.push(QUEUE, {"n": 2})

    assert queue.peek(QUEUE) == {"n": 2}
    assert queue.peek(QUEUE, 5) is None

    queue.clear(QUEUE)

    assert queue.length(QUEUE) == 0
    assert queue.restore_unacked(QUEUE) == 0
