"""Work scheduling strategies for splitting image rows across workers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import RenderConfig


@dataclass
class StaticScheduler:
    """Static work scheduling - pre-assigns chunks to workers round-robin."""

    config: RenderConfig
    world_size: int
    assignments: Dict[int, List[int]] = field(init=False)

    def __post_init__(self) -> None:
        self.assignments = {worker: [] for worker in range(self.world_size)}
        for chunk_id in range(self.config.total_chunks):
            worker = chunk_id % self.world_size
            self.assignments[worker].append(chunk_id)

    def chunks_for_worker(self, worker: int) -> List[int]:
        """Get the list of chunk IDs assigned to a specific worker."""
        return self.assignments.get(worker, [])


@dataclass
class DynamicScheduler:
    """Dynamic work scheduling - assigns chunks on-demand."""

    config: RenderConfig
    next_chunk: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def request_chunk(self) -> Optional[int]:
        """Request the next available chunk, or None if all chunks are assigned."""
        with self._lock:
            if self.next_chunk >= self.config.total_chunks:
                return None
            chunk_id = self.next_chunk
            self.next_chunk += 1
            return chunk_id

    @property
    def remaining(self) -> int:
        return max(self.config.total_chunks - self.next_chunk, 0)
