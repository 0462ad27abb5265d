"""Escape-time Mandelbrot renderer writing grayscale PNGs."""

__version__ = "1.0.0"

# Core computation and config - lightweight, imported by MPI ranks
from .computation import escape_time, intensity, pixel_to_point, render_set
from .config import RenderConfig, default_render_config, parse_complex, parse_resolution
from .report import RenderReport


# Conditional imports - only loaded when needed
def __getattr__(name):
    """Lazy loading of heavy modules."""
    if name == "run_mpi_computation":
        from .mpi import run_mpi_computation

        return run_mpi_computation
    elif name == "log_to_mlflow":
        from .tracking import log_to_mlflow

        return log_to_mlflow
    elif name == "load_render_configs":
        from .config import load_render_configs

        return load_render_configs
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "RenderConfig",
    "RenderReport",
    "default_render_config",
    "parse_complex",
    "parse_resolution",
    "escape_time",
    "pixel_to_point",
    "intensity",
    "render_set",
    "run_mpi_computation",
    "log_to_mlflow",
    "load_render_configs",
]
