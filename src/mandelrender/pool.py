"""In-process render backends: serial, numba-parallel and a fixed thread pool."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List

import numpy as np

from .computation import allocate_pixels, render_chunk_into, render_set_parallel
from .config import RenderConfig
from .report import RenderReport, chunk_record
from .scheduling import DynamicScheduler, StaticScheduler

__all__ = ["run_local_computation"]


def _init_worker_stats() -> Dict[str, float]:
    return {"comp": 0.0, "chunks": 0.0}


def _worker_log(worker: int, message: str, verbose: bool) -> None:
    if verbose:
        print(f"[Worker {worker}] {message}", flush=True)


def _render_chunk_timed(config: RenderConfig, chunk_id: int, pixels: np.ndarray) -> tuple[int, int, float]:
    comp_start = time.perf_counter()
    start, end = render_chunk_into(config, chunk_id, pixels)
    return start, end, time.perf_counter() - comp_start


def run_local_computation(config: RenderConfig, verbose: bool = False) -> RenderReport:
    """Render ``config`` in this process with the configured backend."""
    start_time = time.perf_counter()

    if config.backend == "numba":
        pixels = render_set_parallel(config)
        comp_time = time.perf_counter() - start_time
        worker_stats = [{"comp": comp_time, "chunks": float(config.total_chunks)}]
        chunk_records: List[Dict[str, Any]] = []
    elif config.backend == "threads":
        pixels, worker_stats, chunk_records = _run_threads(config, verbose)
    else:
        pixels, worker_stats, chunk_records = _run_serial(config, verbose)

    total_time = time.perf_counter() - start_time
    timing = _aggregate_timing(worker_stats, total_time)
    return RenderReport(pixels, timing, chunk_records or None)


def _run_serial(config: RenderConfig, verbose: bool):
    pixels = allocate_pixels(config)
    stats = _init_worker_stats()
    records = []
    for chunk_id in range(config.total_chunks):
        start, end, comp = _render_chunk_timed(config, chunk_id, pixels)
        _worker_log(0, f"Computing chunk {chunk_id} (rows {start}:{end}) took {comp:.4f}s [serial]", verbose)
        stats["comp"] += comp
        stats["chunks"] += 1
        records.append(chunk_record(0, chunk_id, start, end, comp))
    return pixels, [stats], records


def _run_threads(config: RenderConfig, verbose: bool):
    """Fixed-size pool; each worker writes only the row slices of its own chunks."""
    pixels = allocate_pixels(config)
    n_workers = config.workers

    if config.schedule == "static":
        scheduler = StaticScheduler(config, n_workers)

        def work(worker: int):
            stats = _init_worker_stats()
            records = []
            for chunk_id in scheduler.chunks_for_worker(worker):
                start, end, comp = _render_chunk_timed(config, chunk_id, pixels)
                _worker_log(
                    worker,
                    f"Computing chunk {chunk_id} (rows {start}:{end}) took {comp:.4f}s [static]",
                    verbose,
                )
                stats["comp"] += comp
                stats["chunks"] += 1
                records.append(chunk_record(worker, chunk_id, start, end, comp))
            return stats, records

    else:
        dynamic = DynamicScheduler(config)

        def work(worker: int):
            stats = _init_worker_stats()
            records = []
            while True:
                chunk_id = dynamic.request_chunk()
                if chunk_id is None:
                    _worker_log(worker, f"No more chunks after {int(stats['chunks'])} chunks", verbose)
                    break
                start, end, comp = _render_chunk_timed(config, chunk_id, pixels)
                _worker_log(
                    worker,
                    f"Computing chunk {chunk_id} (rows {start}:{end}) took {comp:.4f}s [dynamic]",
                    verbose,
                )
                stats["comp"] += comp
                stats["chunks"] += 1
                records.append(chunk_record(worker, chunk_id, start, end, comp))
            return stats, records

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        results = list(executor.map(work, range(n_workers)))

    worker_stats = [stats for stats, _ in results]
    records = sorted((r for _, recs in results for r in recs), key=lambda r: r["chunk_id"])
    return pixels, worker_stats, records


def _aggregate_timing(all_stats: List[Dict[str, float]], total_time: float) -> Dict[str, Any]:
    """Aggregate wall-clock timing plus per-worker statistics."""
    worker_stats = []
    comp_total = 0.0
    total_chunks = 0
    for worker, stats in enumerate(all_stats):
        comp = float(stats.get("comp", 0.0))
        chunks = int(stats.get("chunks", 0))
        worker_stats.append({"worker": worker, "comp_time": comp, "chunks": chunks})
        comp_total += comp
        total_chunks += chunks

    return {
        "wall_time": float(total_time),
        "comp_total": comp_total,
        "total_chunks": total_chunks,
        "worker_stats": worker_stats,
    }
