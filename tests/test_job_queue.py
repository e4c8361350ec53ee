import asyncio

import pytest

@pytest.mark.asyncio
async def test_fifo_order(queue):
    for job_id in ("a", "b", "c"):
        await queue.enqueue(job_id)
    assert await queue.length() == 3

    assert await queue.dequeue(0.1) == "a"
    assert await queue.dequeue(0.1) == "b"
    assert await queue.dequeue(0.1) == "c"

@pytest.mark.asyncio
async def test_dequeue_times_out_on_empty_queue(queue):
    assert await queue.dequeue(0.05) is None

@pytest.mark.asyncio
async def test_duplicate_enqueue_delivers_twice(queue):
    await queue.enqueue("a")
    await queue.enqueue("a")
    assert await queue.dequeue(0.1) == "a"
    assert await queue.dequeue(0.1) == "a"

@pytest.mark.asyncio
async def test_blocked_dequeue_wakes_on_enqueue(queue):
    waiter = asyncio.create_task(queue.dequeue(2))
    await asyncio.sleep(0.02)
    await queue.enqueue("late")
    assert await waiter == "late"

@pytest.mark.asyncio
async def test_each_entry_goes_to_one_consumer(queue):
    await queue.enqueue("only")
    got = await asyncio.gather(queue.dequeue(0.1), queue.dequeue(0.1))
    assert got.count("only") == 1
    assert got.count(None) == 1

@pytest.mark.asyncio
async def test_requeue_puts_id_back_at_the_head(queue):
    await queue.enqueue("a")
    await queue.enqueue("b")
    assert await queue.dequeue(0.1) == "a"

    await queue.requeue("a")
    assert await queue.dequeue(0.1) == "a"
    assert await queue.dequeue(0.1) == "b"
