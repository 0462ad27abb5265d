"""Structured results returned from a render."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass(frozen=True)
class RenderReport:
    """Container for outputs produced by the render backends."""

    pixels: Optional[np.ndarray]
    timing: Dict[str, Any]
    chunks: Optional[List[Dict[str, Any]]]

    def copy_chunks(self) -> Optional[List[Dict[str, Any]]]:
        if self.chunks is None:
            return None
        return [record.copy() for record in self.chunks]

    @property
    def buffer(self) -> bytes:
        """Row-major intensity bytes, one per pixel."""
        if self.pixels is None:
            return b""
        return self.pixels.tobytes(order="C")

    def summary(self) -> Dict[str, float]:
        """Simple image statistics, used as tracking metrics."""
        if self.pixels is None or self.pixels.size == 0:
            return {}
        return {
            "mean_intensity": float(self.pixels.mean()),
            "inside_fraction": float(np.count_nonzero(self.pixels == 0) / self.pixels.size),
        }


def chunk_record(worker: int, chunk_id: int, start: int, end: int, comp_time: float) -> Dict[str, Any]:
    """Create a uniform chunk metadata record."""
    return {
        "worker": int(worker),
        "chunk_id": int(chunk_id),
        "start_row": int(start),
        "end_row": int(end - 1) if end > start else int(end),
        "comp_time": comp_time,
    }
