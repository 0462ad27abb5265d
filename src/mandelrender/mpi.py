"""MPI communication patterns for distributed rendering."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

import numpy as np
from mpi4py import MPI

from .computation import allocate_pixels, compute_chunk
from .config import RenderConfig
from .report import RenderReport, chunk_record
from .scheduling import DynamicScheduler, StaticScheduler

__all__ = ["run_mpi_computation"]

# MPI tags
REQUEST_TAG = 10
ASSIGN_TAG = 11
DATA_TAG = 20

SHUTDOWN = -1


def _init_rank_stats() -> Dict[str, float]:
    return {
        "comp": 0.0,
        "comm_send": 0.0,
        "comm_recv": 0.0,
        "chunks": 0.0,
    }


def _rank_log(rank: int, message: str, verbose: bool) -> None:
    """Emit a progress message from a given MPI rank."""
    if verbose:
        print(f"[Rank {rank}] {message}", flush=True)


def _compute_chunk_timed(config: RenderConfig, chunk_id: int) -> tuple[int, int, np.ndarray, float]:
    """Compute a chunk and return start/end rows along with elapsed time."""
    comp_start = MPI.Wtime()
    start, end, chunk = compute_chunk(config, chunk_id)
    return start, end, chunk, MPI.Wtime() - comp_start


def _receive_worker_chunk(
    comm: MPI.Intracomm,
    worker: int,
    pixels: np.ndarray,
    stats: Dict[str, float],
) -> None:
    """Receive a chunk produced by a worker and write it into its row slice."""
    t0 = MPI.Wtime()
    start, end = comm.recv(source=worker, tag=DATA_TAG)
    chunk = comm.recv(source=worker, tag=DATA_TAG)
    pixels[start:end, :] = chunk
    stats["comm_recv"] += MPI.Wtime() - t0


def _send_chunk_payload(
    comm: MPI.Intracomm,
    start: int,
    end: int,
    chunk: np.ndarray,
    stats: Dict[str, float],
) -> None:
    """Send chunk metadata and payload to rank 0."""
    t0 = MPI.Wtime()
    comm.send((start, end), dest=0, tag=DATA_TAG)
    comm.send(chunk, dest=0, tag=DATA_TAG)
    stats["comm_send"] += MPI.Wtime() - t0


def run_mpi_computation(config: RenderConfig, verbose: bool = False) -> RenderReport:
    """Execute the render across all ranks; only rank 0 receives the pixels."""
    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    size = comm.Get_size()

    start_time = MPI.Wtime()

    if size == 1:
        pixels, rank_times, chunk_records = _run_single(config, verbose)
    elif config.schedule == "static":
        pixels, rank_times, chunk_records = _run_static(comm, config, rank, size, verbose)
    elif rank == 0:
        pixels, rank_times, chunk_records = _master_dynamic(comm, config, size, verbose)
    else:
        pixels = None
        rank_times, chunk_records = _worker_dynamic(comm, config, verbose)

    total_time = MPI.Wtime() - start_time

    all_times = comm.gather(rank_times, root=0)
    all_chunks = comm.gather(chunk_records, root=0)

    if rank != 0:
        return RenderReport(None, {}, None)

    timing = _aggregate_timing(all_times, total_time)
    records = sorted((r for recs in all_chunks for r in recs), key=lambda r: r["chunk_id"])
    return RenderReport(pixels, timing, records or None)


def _run_single(config: RenderConfig, verbose: bool) -> Tuple[np.ndarray, Dict, List[Dict]]:
    pixels = allocate_pixels(config)
    stats = _init_rank_stats()
    records = []
    for chunk_id in range(config.total_chunks):
        start, end, chunk, comp = _compute_chunk_timed(config, chunk_id)
        _rank_log(0, f"Computing chunk {chunk_id} (rows {start}:{end}) took {comp:.4f}s [single]", verbose)
        pixels[start:end, :] = chunk
        stats["comp"] += comp
        stats["chunks"] += 1
        records.append(chunk_record(0, chunk_id, start, end, comp))
    return pixels, stats, records


def _run_static(
    comm: MPI.Intracomm,
    config: RenderConfig,
    rank: int,
    size: int,
    verbose: bool,
) -> Tuple[np.ndarray | None, Dict, List[Dict]]:
    """Static scheduling: pre-assigned chunks, gathered to rank 0."""
    scheduler = StaticScheduler(config, size)

    results: List[Tuple[int, int, np.ndarray]] = []
    records: List[Dict] = []
    stats = _init_rank_stats()

    for cid in scheduler.chunks_for_worker(rank):
        start, end, chunk, comp = _compute_chunk_timed(config, cid)
        _rank_log(rank, f"Computing chunk {cid} (rows {start}:{end}) took {comp:.4f}s [static]", verbose)
        stats["comp"] += comp
        stats["chunks"] += 1
        results.append((start, end, chunk))
        records.append(chunk_record(rank, cid, start, end, comp))

    if rank != 0:
        for start, end, chunk in results:
            _send_chunk_payload(comm, start, end, chunk, stats)
        return None, stats, records

    pixels = allocate_pixels(config)
    for start, end, chunk in results:
        pixels[start:end, :] = chunk
    for worker in range(1, size):
        for _ in scheduler.chunks_for_worker(worker):
            _receive_worker_chunk(comm, worker, pixels, stats)
    return pixels, stats, records


def _assign_chunk(
    comm: MPI.Intracomm,
    scheduler: DynamicScheduler,
    worker: int,
    stats: Dict[str, float],
    verbose: bool,
) -> bool:
    """Assign the next chunk to a worker, or send shutdown if depleted."""
    chunk_id = scheduler.request_chunk()
    if chunk_id is not None:
        _rank_log(0, f"Assigning chunk {chunk_id} to worker {worker}", verbose)
        payload = chunk_id
    else:
        _rank_log(0, f"No more chunks - sending shutdown to worker {worker}", verbose)
        payload = SHUTDOWN
    t0 = MPI.Wtime()
    comm.send(payload, dest=worker, tag=ASSIGN_TAG)
    stats["comm_send"] += MPI.Wtime() - t0
    return chunk_id is not None


def _master_dynamic(
    comm: MPI.Intracomm,
    config: RenderConfig,
    size: int,
    verbose: bool,
) -> Tuple[np.ndarray, Dict, List[Dict]]:
    """Master rank for dynamic scheduling; it hands out chunks and collects rows."""
    scheduler = DynamicScheduler(config)
    pixels = allocate_pixels(config)
    stats = _init_rank_stats()

    active_workers = size - 1
    for worker in range(1, size):
        if not _assign_chunk(comm, scheduler, worker, stats, verbose):
            active_workers -= 1

    status = MPI.Status()
    while active_workers > 0:
        t0 = MPI.Wtime()
        comm.recv(source=MPI.ANY_SOURCE, tag=REQUEST_TAG, status=status)
        stats["comm_recv"] += MPI.Wtime() - t0
        worker = status.Get_source()
        _receive_worker_chunk(comm, worker, pixels, stats)
        if not _assign_chunk(comm, scheduler, worker, stats, verbose):
            active_workers -= 1

    return pixels, stats, []


def _worker_dynamic(
    comm: MPI.Intracomm,
    config: RenderConfig,
    verbose: bool,
) -> Tuple[Dict, List[Dict]]:
    """Worker rank for dynamic scheduling."""
    rank = comm.Get_rank()
    stats = _init_rank_stats()
    records: List[Dict] = []

    while True:
        t0 = MPI.Wtime()
        chunk_id = comm.recv(source=0, tag=ASSIGN_TAG)
        stats["comm_recv"] += MPI.Wtime() - t0

        if chunk_id == SHUTDOWN:
            _rank_log(rank, f"Received shutdown signal after {int(stats['chunks'])} chunks", verbose)
            break

        start, end, chunk, comp = _compute_chunk_timed(config, chunk_id)
        _rank_log(rank, f"Computing chunk {chunk_id} (rows {start}:{end}) took {comp:.4f}s", verbose)
        stats["comp"] += comp
        stats["chunks"] += 1

        t0 = MPI.Wtime()
        comm.send(None, dest=0, tag=REQUEST_TAG)
        stats["comm_send"] += MPI.Wtime() - t0
        _send_chunk_payload(comm, start, end, chunk, stats)
        records.append(chunk_record(rank, chunk_id, start, end, comp))

    return stats, records


def _aggregate_timing(all_times: List[Dict], total_time: float) -> Dict[str, Any]:
    """Aggregate wall-clock timing plus per-rank statistics."""
    rank_stats: List[Dict[str, Any]] = []
    comp_total = 0.0
    comm_send_total = 0.0
    comm_recv_total = 0.0
    total_chunks = 0

    for rank, stats in enumerate(all_times):
        comp = float(stats.get("comp", 0.0))
        comm_send = float(stats.get("comm_send", 0.0))
        comm_recv = float(stats.get("comm_recv", 0.0))
        chunks = int(stats.get("chunks", 0))

        rank_stats.append(
            {
                "rank": int(rank),
                "comp_time": comp,
                "comm_time": comm_send + comm_recv,
                "chunks": chunks,
            }
        )

        comp_total += comp
        comm_send_total += comm_send
        comm_recv_total += comm_recv
        total_chunks += chunks

    return {
        "wall_time": float(total_time),
        "comp_total": comp_total,
        "comm_send_total": comm_send_total,
        "comm_recv_total": comm_recv_total,
        "comm_total": comm_send_total + comm_recv_total,
        "total_chunks": total_chunks,
        "rank_stats": rank_stats,
    }
