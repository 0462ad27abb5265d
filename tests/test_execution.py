"""Render orchestration and batch handling."""

import sys
from dataclasses import replace

import pytest
from PIL import Image
from mandelrender import execution
from mandelrender.config import default_render_config


@pytest.fixture(autouse=True)
def no_mpi_launcher(monkeypatch):
    for name in execution.MPI_LAUNCHER_ENV + ("OMPI_COMM_WORLD_RANK", "PMI_RANK"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SKIP_MLFLOW", "1")


def test_needs_mpirun(monkeypatch):
    config = default_render_config(backend="mpi", workers=4)
    assert execution.needs_mpirun(config)
    assert not execution.needs_mpirun(replace(config, workers=1))
    assert not execution.needs_mpirun(replace(config, backend="threads"))

    monkeypatch.setenv("OMPI_COMM_WORLD_SIZE", "4")
    assert not execution.needs_mpirun(config)


def test_build_command():
    config = default_render_config(output="m.png", image_size="40x30", backend="mpi", workers=3)
    cmd, env = execution.build_command(config, track=True)

    assert cmd[:6] == ["mpirun", "-n", "3", sys.executable, "-m", "mandelrender.cli"]
    assert cmd[6:10] == ["m.png", "40x30", "-1.2,0.35", "-1.0,0.2"]
    assert "--backend=mpi" in cmd
    assert cmd[-1] == "--track"
    assert env["SKIP_MLFLOW"] == "1"
    assert "--quiet" not in cmd


def test_build_command_forwards_quiet():
    config = default_render_config(output="m.png", image_size="40x30", backend="mpi", workers=3)
    cmd, _ = execution.build_command(config, verbose=False)

    assert "--quiet" in cmd
    assert "--track" not in cmd


def test_run_single_render_writes_image(tmp_path, capsys):
    config = default_render_config(output=str(tmp_path / "m.png"), image_size="20x10", backend="threads", workers=2)
    report = execution.run_single_render(config)

    with Image.open(tmp_path / "m.png") as image:
        assert image.size == (20, 10)
        assert image.tobytes() == report.buffer
    out = capsys.readouterr().out
    assert "[Run] Rendering" in out
    assert "[Timing] Total:" in out


def test_run_single_render_quiet(tmp_path, capsys):
    config = default_render_config(output=str(tmp_path / "m.png"), image_size="4x4")
    execution.run_single_render(config, verbose=False)
    assert capsys.readouterr().out == ""


def test_run_batch_continues_past_failures(tmp_path, capsys):
    good = default_render_config(output=str(tmp_path / "good.png"), image_size="8x8")
    bad = replace(good, output=str(tmp_path / "missing" / "bad.png"))
    last = replace(good, output=str(tmp_path / "last.png"))

    assert execution.run_batch([good, bad, last], verbose=False) == 1
    assert (tmp_path / "good.png").exists()
    assert (tmp_path / "last.png").exists()
    out = capsys.readouterr().out
    assert "Successful: 2" in out
    assert "Failed:     1" in out


def test_run_batch_task_id(tmp_path):
    configs = [default_render_config(output=str(tmp_path / f"{i}.png"), image_size="4x4") for i in range(3)]

    assert execution.run_batch(configs, task_id=1, verbose=False) == 0
    assert [p.name for p in tmp_path.iterdir()] == ["1.png"]
    assert execution.run_batch(configs, task_id=3, verbose=False) == 1
    assert execution.run_batch([], verbose=False) == 1


@pytest.fixture
def without_mpi4py(monkeypatch):
    monkeypatch.setitem(sys.modules, "mpi4py", None)
    monkeypatch.setitem(sys.modules, "mandelrender.mpi", None)


def test_run_batch_reports_missing_mpi4py(tmp_path, capsys, without_mpi4py):
    config = default_render_config(output=str(tmp_path / "m.png"), image_size="4x4", backend="mpi", workers=1)

    assert execution.run_batch([config], verbose=False) == 1
    assert "requires mpi4py" in capsys.readouterr().err
    assert not (tmp_path / "m.png").exists()
