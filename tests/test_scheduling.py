"""Static and dynamic row-chunk schedulers."""

import threading

from mandelrender.config import default_render_config
from mandelrender.scheduling import DynamicScheduler, StaticScheduler


def test_static_round_robin():
    config = default_render_config(image_size="10x75", chunk_size=8)  # 10 chunks
    scheduler = StaticScheduler(config, 4)

    assert scheduler.chunks_for_worker(0) == [0, 4, 8]
    assert scheduler.chunks_for_worker(1) == [1, 5, 9]
    assert scheduler.chunks_for_worker(3) == [3, 7]
    assert scheduler.chunks_for_worker(4) == []
    assigned = sorted(c for w in range(4) for c in scheduler.chunks_for_worker(w))
    assert assigned == list(range(config.total_chunks))


def test_static_more_workers_than_chunks():
    config = default_render_config(image_size="10x10", chunk_size=8)  # 2 chunks
    scheduler = StaticScheduler(config, 5)
    assert [scheduler.chunks_for_worker(w) for w in range(5)] == [[0], [1], [], [], []]


def test_dynamic_hands_out_each_chunk_once():
    config = default_render_config(image_size="10x20", chunk_size=8)  # 3 chunks
    scheduler = DynamicScheduler(config)

    assert scheduler.remaining == 3
    assert [scheduler.request_chunk() for _ in range(5)] == [0, 1, 2, None, None]
    assert scheduler.remaining == 0


def test_dynamic_is_safe_across_threads():
    config = default_render_config(image_size="10x1000", chunk_size=1)
    scheduler = DynamicScheduler(config)
    taken = [[] for _ in range(8)]

    def drain(slot):
        while (chunk_id := scheduler.request_chunk()) is not None:
            taken[slot].append(chunk_id)

    threads = [threading.Thread(target=drain, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(c for chunk_ids in taken for c in chunk_ids) == list(range(1000))
