"""MLflow tracking for renders."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Sequence

import mlflow
import pandas as pd
from matplotlib import pyplot as plt

from .config import RenderConfig
from .report import RenderReport

DEFAULT_TRACKING_URI = "file:./mlruns"
DEFAULT_EXPERIMENT_NAME = "mandelrender"


def log_to_mlflow(
    config: RenderConfig,
    report: RenderReport,
    suite_name: str = "default",
) -> None:
    """Log a render to MLflow with the image, timing metrics and chunk table.

    If MLFLOW_RUN_ID is set in the environment, the existing run (started by a
    parent process that launched ``mpirun``) is continued; otherwise a new run
    is created.

    Args:
        config: Render configuration
        report: Render outputs (pixels, timing stats, chunk table)
        suite_name: Batch suite the render belongs to, used as a tag
    """
    if os.environ.get("SKIP_MLFLOW"):
        return

    mlflow.set_tracking_uri(_resolve_tracking_uri())
    mlflow.set_experiment(_resolve_experiment_name())

    existing_run_id = os.environ.get("MLFLOW_RUN_ID")
    if existing_run_id:
        run_context = mlflow.start_run(run_id=existing_run_id)
    else:
        run_context = mlflow.start_run(run_name=config.run_name)

    with run_context as run:
        mlflow.set_tags({"node_name": os.uname().nodename, "suite": suite_name})
        mlflow.log_params(config.to_dict())

        chunk_records = report.copy_chunks()
        if chunk_records:
            mlflow.log_table(_records_to_table(chunk_records), "chunks.json")

        timing = report.timing or {}
        for key in ("rank_stats", "worker_stats"):
            records = timing.get(key)
            if isinstance(records, list) and records:
                mlflow.log_table(_records_to_table(records), f"{key}.json")

        mlflow.log_metrics(render_metrics(report))

        if report.pixels is not None:
            fig = render_figure(config, report)
            mlflow.log_figure(fig, "figures/mandelbrot.png")
            plt.close(fig)

        print(f"[MLflow] Logged run: {config.run_name} (suite: {suite_name})")
        print(f"[MLflow] Run ID: {run.info.run_id}")


def render_metrics(report: RenderReport) -> Dict[str, float]:
    timing = report.timing or {}
    metrics = {
        "wall_time": float(timing.get("wall_time", 0.0)),
        "comp_total": float(timing.get("comp_total", 0.0)),
        "total_chunks": float(timing.get("total_chunks", 0)),
    }
    if "comm_total" in timing:
        metrics["comm_total"] = float(timing["comm_total"])
    metrics.update(report.summary())
    return metrics


def render_figure(config: RenderConfig, report: RenderReport):
    """Matplotlib figure of the rendered buffer placed on its viewport axes."""
    fig, ax = plt.subplots(figsize=(6, 6 * config.height / config.width))
    extent = [
        config.upper_left.real,
        config.lower_right.real,
        config.lower_right.imag,
        config.upper_left.imag,
    ]
    ax.imshow(report.pixels, cmap="gray", vmin=0, vmax=255, extent=extent)
    ax.set_xlabel("Re(c)")
    ax.set_ylabel("Im(c)")
    return fig


def _records_to_table(records: Sequence[Dict[str, Any]]) -> Dict[str, List[Any]]:
    """Convert row-wise records into MLflow table format."""
    frame = pd.DataFrame.from_records(records)
    return frame.to_dict(orient="list")


def _resolve_tracking_uri() -> str:
    return os.environ.get("MLFLOW_TRACKING_URI") or DEFAULT_TRACKING_URI


def _resolve_experiment_name() -> str:
    return os.environ.get("MLFLOW_EXPERIMENT_NAME") or DEFAULT_EXPERIMENT_NAME
