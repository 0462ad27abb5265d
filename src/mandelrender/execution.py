"""Execution helpers for render CLI workflows."""

from __future__ import annotations

import os
import selectors
import subprocess
import sys
from typing import Optional

from .config import RenderConfig
from .image import save_image
from .pool import run_local_computation
from .report import RenderReport

# Set by the common MPI launchers in every spawned rank.
MPI_LAUNCHER_ENV = ("OMPI_COMM_WORLD_SIZE", "PMI_SIZE", "PMIX_RANK", "MPI_LOCALNRANKS")
MPI_MISSING = "the mpi backend requires mpi4py (pip install mandelrender[mpi])"


def launched_by_mpirun() -> bool:
    return any(os.environ.get(name) for name in MPI_LAUNCHER_ENV)


def needs_mpirun(config: RenderConfig) -> bool:
    """True when an MPI render has to be re-launched under ``mpirun``."""
    return config.backend == "mpi" and config.workers > 1 and not launched_by_mpirun()


def render(config: RenderConfig, verbose: bool = False) -> RenderReport:
    """Compute the pixel buffer for ``config`` with its backend."""
    if config.backend == "mpi":
        from .mpi import run_mpi_computation

        return run_mpi_computation(config, verbose=verbose)
    return run_local_computation(config, verbose=verbose)


def run_single_render(
    config: RenderConfig,
    suite_name: Optional[str] = None,
    *,
    track: bool = False,
    verbose: bool = True,
) -> RenderReport:
    """Render one image and write it to ``config.output``.

    On non-root MPI ranks nothing is written and the returned report carries
    no pixels.
    """
    if verbose and _is_root_rank():
        print(
            f"[Run] Rendering '{config.run_name}' "
            f"(backend={config.backend}, schedule={config.schedule}, "
            f"workers={config.workers}, chunks={config.total_chunks})",
            flush=True,
        )

    report = render(config, verbose=verbose)
    if report.pixels is None:
        return report

    path = save_image(config.output, report.pixels)
    if verbose:
        print(f"[Image] Wrote {config.image_size} grayscale PNG to {path}", flush=True)

    if track:
        from .tracking import log_to_mlflow

        suite = suite_name or os.environ.get("MANDELRENDER_SUITE") or "default"
        log_to_mlflow(config, report, suite)

    if verbose:
        wall_time = report.timing.get("wall_time", 0.0)
        print(f"[Timing] Total: {wall_time:.4f}s", flush=True)
    return report


def run_batch(
    configs: list[RenderConfig],
    task_id: Optional[int] = None,
    suite_name: Optional[str] = None,
    descriptor: str = "batch",
    *,
    track: bool = False,
    verbose: bool = True,
) -> int:
    """Render a list of configs, continuing past failures. Returns an exit code."""
    if not configs:
        print("ERROR: No configurations found in batch", file=sys.stderr)
        return 1

    if task_id is not None:
        if task_id < 0 or task_id >= len(configs):
            print(f"ERROR: task-id {task_id} out of range [0, {len(configs) - 1}]", file=sys.stderr)
            return 1
        config = configs[task_id]
        print(f"[Task {task_id}] Running: {config.run_name}")
        ok = _run_config(config, task_id, len(configs), suite_name, track, verbose, show_progress=False)
        return 0 if ok else 1

    print("=" * 70)
    print(f"Rendering {len(configs)} configurations from {descriptor}")
    print("=" * 70)

    successes = 0
    failures: list[tuple[int, str]] = []

    for idx, cfg in enumerate(configs):
        if _run_config(cfg, idx, len(configs), suite_name, track, verbose):
            successes += 1
        else:
            failures.append((idx, cfg.run_name))

    print("\n" + "=" * 70)
    print("Summary")
    print("=" * 70)
    print(f"Total:      {len(configs)}")
    print(f"Successful: {successes}")
    print(f"Failed:     {len(failures)}")

    if failures:
        print("\nFailed configurations:")
        for idx, name in failures:
            print(f"  [{idx}] {name}")
        return 1

    return 0


def _run_config(
    config: RenderConfig,
    config_idx: int,
    total_configs: int,
    suite_name: Optional[str],
    track: bool,
    verbose: bool,
    show_progress: bool = True,
) -> bool:
    if needs_mpirun(config):
        return run_single_config_subprocess(
            config,
            config_idx,
            total_configs,
            show_progress=show_progress,
            suite_name=suite_name,
            track=track,
            verbose=verbose,
        )

    if show_progress:
        print(f"\n[{config_idx + 1}/{total_configs}] {config.run_name}")
    try:
        run_single_render(config, suite_name, track=track, verbose=verbose)
    except (OSError, ValueError) as exc:
        print(f"    ✗ FAILED: {exc}", file=sys.stderr)
        return False
    except ImportError:
        if config.backend != "mpi":
            raise
        print(f"    ✗ FAILED: {MPI_MISSING}", file=sys.stderr)
        return False
    if show_progress:
        print("    ✓ Completed")
    return True


def run_single_config_subprocess(
    config: RenderConfig,
    config_idx: int,
    total_configs: int,
    *,
    show_progress: bool = True,
    suite_name: Optional[str] = None,
    track: bool = False,
    verbose: bool = True,
) -> bool:
    """Execute a single configuration as a subprocess via mpirun."""
    if show_progress:
        print(f"\n[{config_idx + 1}/{total_configs}] {config.run_name}")
        print(
            "    workers=%s, chunk_size=%s, schedule=%s, backend=%s"
            % (config.workers, config.chunk_size, config.schedule, config.backend)
        )

    run_context = None
    if track and not os.environ.get("SKIP_MLFLOW"):
        import mlflow

        from .tracking import _resolve_experiment_name, _resolve_tracking_uri

        mlflow.set_tracking_uri(_resolve_tracking_uri())
        mlflow.set_experiment(_resolve_experiment_name())
        run_context = mlflow.start_run(run_name=config.run_name)
        run_context.__enter__()

    cmd, env = build_command(config, track=track, verbose=verbose)

    if suite_name:
        env["MANDELRENDER_SUITE"] = suite_name

    # The ranks continue the parent's run
    if run_context:
        env["MLFLOW_RUN_ID"] = run_context.info.run_id

    stdout_chunks: list[str] = []
    stderr_chunks: list[str] = []
    stderr_text = ""
    returncode: int | None = None

    try:
        proc = subprocess.Popen(
            cmd,
            text=True,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=1,
        )

        selector = selectors.DefaultSelector()
        if proc.stdout is not None:
            selector.register(proc.stdout, selectors.EVENT_READ)
        if proc.stderr is not None:
            selector.register(proc.stderr, selectors.EVENT_READ)

        try:
            while selector.get_map():
                for key, _ in selector.select():
                    stream = key.fileobj
                    data = stream.readline()
                    if data == "":
                        selector.unregister(stream)
                        stream.close()
                        continue
                    if stream is proc.stdout:
                        print(data, end="")
                        stdout_chunks.append(data)
                        sys.stdout.flush()
                    else:
                        print(data, end="", file=sys.stderr)
                        stderr_chunks.append(data)
                        sys.stderr.flush()
        except KeyboardInterrupt:
            proc.kill()
            proc.wait()
            raise
        finally:
            selector.close()

        returncode = proc.wait()
        stderr_text = "".join(stderr_chunks)

        if run_context:
            import mlflow

            stdout_text = "".join(stdout_chunks)
            if stdout_text:
                mlflow.log_text(stdout_text, "logs/stdout.txt")
            if stderr_text:
                mlflow.log_text(stderr_text, "logs/stderr.txt")
    except FileNotFoundError as exc:
        print(f"    ✗ FAILED: could not launch {cmd[0]}: {exc}", file=sys.stderr)
        return False
    finally:
        if run_context:
            exc_type, exc_value, exc_tb = sys.exc_info()
            run_context.__exit__(exc_type, exc_value, exc_tb)

    if returncode != 0:
        print(f"    ✗ FAILED with exit code {returncode}", file=sys.stderr)
        if stderr_text:
            print(f"    Error: {stderr_text[:200]}...", file=sys.stderr)
        return False

    if show_progress:
        print("    ✓ Completed")
    return True


def build_command(
    config: RenderConfig,
    track: bool = False,
    verbose: bool = True,
) -> tuple[list[str], dict[str, str]]:
    """Build the mpirun command and environment for a single configuration."""
    cmd = ["mpirun", "-n", str(config.workers), sys.executable, "-m", "mandelrender.cli"]
    cmd.extend(config.to_cli_args())
    if track:
        cmd.append("--track")
    if not verbose:
        cmd.append("--quiet")

    env = os.environ.copy()
    return cmd, env


def _is_root_rank() -> bool:
    for name in ("OMPI_COMM_WORLD_RANK", "PMI_RANK", "PMIX_RANK"):
        value = os.environ.get(name)
        if value is not None:
            return value == "0"
    return True
