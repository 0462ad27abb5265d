"""Configuration objects, argument parsers and YAML loading for renders."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from itertools import product
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

import yaml

T = TypeVar("T")

SCHEDULES = ("static", "dynamic")
BACKENDS = ("serial", "numba", "threads", "mpi")
MAX_LIMIT = 255


def parse_pair(value: str, separator: str, convert: Callable[[str], T]) -> Optional[Tuple[T, T]]:
    """Split ``value`` at the first ``separator`` and convert both halves.

    Returns ``None`` when the separator is missing or either half fails to
    convert, e.g. ``parse_pair("100x200", "x", int) == (100, 200)`` but
    ``parse_pair("100x", "x", int) is None``.
    """
    index = value.find(separator)
    if index < 0:
        return None
    try:
        return convert(value[:index]), convert(value[index + 1 :])
    except ValueError:
        return None


def parse_resolution(value: str) -> Tuple[int, int]:
    """Parse ``WIDTHxHEIGHT`` into a pair of positive ints."""
    pair = parse_pair(value.lower(), "x", int)
    if pair is None:
        raise ValueError(f"error parsing image dimensions: {value!r}")
    width, height = pair
    if width <= 0 or height <= 0:
        raise ValueError(f"image dimensions must be positive: {value!r}")
    return width, height


def parse_complex(value: str) -> complex:
    """Parse ``RE,IM`` into a complex number."""
    pair = parse_pair(value, ",", float)
    if pair is None:
        raise ValueError(f"error parsing complex point: {value!r}")
    re, im = pair
    if not (math.isfinite(re) and math.isfinite(im)):
        raise ValueError(f"complex point must be finite: {value!r}")
    return complex(re, im)


def format_complex(value: complex) -> str:
    return f"{value.real!r},{value.imag!r}"


@dataclass(frozen=True)
class RenderConfig:
    """Everything needed to render one image."""

    output: str
    width: int
    height: int
    upper_left: complex
    lower_right: complex
    limit: int = 255
    chunk_size: int = 16
    schedule: str = "static"  # 'static' or 'dynamic'
    backend: str = "serial"  # 'serial', 'numba', 'threads' or 'mpi'
    workers: int = 4
    name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"image dimensions must be positive, got {self.image_size}")
        if not 1 <= self.limit <= MAX_LIMIT:
            raise ValueError(f"limit must be in [1, {MAX_LIMIT}], got {self.limit}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.workers <= 0:
            raise ValueError(f"workers must be positive, got {self.workers}")
        if self.schedule not in SCHEDULES:
            raise ValueError(f"schedule must be one of {SCHEDULES}, got {self.schedule!r}")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got {self.backend!r}")

    @property
    def total_chunks(self) -> int:
        return (self.height + self.chunk_size - 1) // self.chunk_size

    @property
    def image_size(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def bounds(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def run_name(self) -> str:
        """Unique-ish run name embedding the render parameters."""
        label = f"{self.name}_" if self.name else ""
        return (
            f"{label}{self.backend}_{self.schedule}_w{self.workers}_"
            f"c{self.chunk_size}_l{self.limit}_{self.image_size}"
        )

    def to_dict(self) -> dict:
        """Flat dict of plain values, suitable for MLflow params."""
        data = asdict(self)
        data["upper_left"] = format_complex(self.upper_left)
        data["lower_right"] = format_complex(self.lower_right)
        return data

    def to_cli_args(self) -> List[str]:
        """Convert config to CLI arguments accepted by ``mandelrender.cli``."""
        return [
            self.output,
            self.image_size,
            format_complex(self.upper_left),
            format_complex(self.lower_right),
            f"--limit={self.limit}",
            f"--chunk-size={self.chunk_size}",
            f"--schedule={self.schedule}",
            f"--backend={self.backend}",
            f"--workers={self.workers}",
        ]


DEFAULT_RENDER_CONFIG = RenderConfig(
    output="mandel.png",
    width=1000,
    height=750,
    upper_left=complex(-1.20, 0.35),
    lower_right=complex(-1.00, 0.20),
)


def default_render_config(**overrides: object) -> RenderConfig:
    """Return the canonical default config optionally overridden with kwargs."""
    return replace(DEFAULT_RENDER_CONFIG, **_coerce_fields(overrides))


def load_render_configs(yaml_path: str | Path) -> List[RenderConfig]:
    """Load every render described by a YAML batch file.

    The file may hold ``defaults``, a ``renders`` list and a ``sweep`` mapping
    at the top level, or a ``suites`` list whose entries carry their own
    ``renders``/``sweep``/``defaults``.
    """
    return [cfg for _, configs in load_named_render_configs(yaml_path) for cfg in configs]


def load_named_render_configs(
    yaml_path: str | Path,
    suite: str | None = None,
) -> List[tuple[str, List[RenderConfig]]]:
    with open(yaml_path) as f:
        cfg = yaml.safe_load(f) or {}

    defaults: Dict[str, object] = cfg.get("defaults", {}) or {}
    suites = cfg.get("suites")
    results: List[tuple[str, List[RenderConfig]]] = []

    if suites:
        for entry in suites:
            name = entry.get("name")
            if not name:
                continue
            if suite and name != suite:
                continue
            suite_defaults = {**defaults, **(entry.get("defaults", {}) or {})}
            results.append((name, _expand_suite(suite_defaults, entry)))
        if suite and not results:
            raise ValueError(f"Suite '{suite}' not found in {yaml_path}")
        return results

    label = cfg.get("name") or Path(yaml_path).stem
    if suite and suite != label:
        raise ValueError(f"Suite '{suite}' not found in {yaml_path}")
    return [(label, _expand_suite(defaults, cfg))]


def get_config_by_index(yaml_path: str | Path, index: int) -> RenderConfig:
    """Get a specific config by index from a batch file."""
    configs = load_render_configs(yaml_path)
    if index < 0 or index >= len(configs):
        raise ValueError(f"Config index {index} out of range [0, {len(configs) - 1}]")
    return configs[index]


def _expand_suite(defaults: Dict[str, object], section: Dict[str, object]) -> List[RenderConfig]:
    renders = section.get("renders") or [{}]
    sweep: Dict[str, object] = section.get("sweep", {}) or {}

    configs: List[RenderConfig] = []
    for render in renders:
        base = {**defaults, **render}
        configs.extend(_expand_sweep(base, sweep))
    return configs


def _expand_sweep(base: Dict[str, object], sweep: Dict[str, object]) -> List[RenderConfig]:
    """Expand a sweep definition into RenderConfig instances."""
    keys = list(sweep.keys())
    if not keys:
        return [_build_render_config(base)]

    configs = []
    for combo in product(*[_as_list(sweep[k]) for k in keys]):
        data = {**base, **dict(zip(keys, combo))}
        configs.append(_build_render_config(data))
    return configs


def _build_render_config(raw_data: Dict[str, object]) -> RenderConfig:
    data = _coerce_fields(raw_data)
    data.setdefault("output", DEFAULT_RENDER_CONFIG.output)
    for key in ("width", "height", "upper_left", "lower_right"):
        data.setdefault(key, getattr(DEFAULT_RENDER_CONFIG, key))
    data["output"] = str(data["output"]).format(
        width=data["width"],
        height=data["height"],
        limit=data.get("limit", DEFAULT_RENDER_CONFIG.limit),
        schedule=data.get("schedule", DEFAULT_RENDER_CONFIG.schedule),
        backend=data.get("backend", DEFAULT_RENDER_CONFIG.backend),
        name=data.get("name", ""),
    )
    return RenderConfig(**data)  # type: ignore[arg-type]


def _coerce_fields(data: Dict[str, object]) -> Dict[str, object]:
    result = dict(data)
    image = result.pop("image_size", None)
    if image is not None:
        width, height = _normalize_shape_entry(image)
        result.setdefault("width", width)
        result.setdefault("height", height)
    for key in ("width", "height", "limit", "chunk_size", "workers"):
        if key in result:
            result[key] = int(result[key])
    for key in ("upper_left", "lower_right"):
        if key in result:
            result[key] = _normalize_point(result[key])
    if "name" in result:
        result["name"] = str(result["name"])
    return result


def _normalize_shape_entry(entry: object) -> Tuple[int, int]:
    if isinstance(entry, dict):
        width = entry.get("width")
        height = entry.get("height")
        if width is None or height is None:
            raise ValueError("image_size dict must include 'width' and 'height'")
        return int(width), int(height)
    if isinstance(entry, (list, tuple)) and len(entry) == 2:
        return int(entry[0]), int(entry[1])
    if isinstance(entry, str):
        return parse_resolution(entry)
    raise ValueError(f"Unsupported image size specification: {entry!r}")


def _normalize_point(entry: object) -> complex:
    if isinstance(entry, complex):
        return entry
    if isinstance(entry, (int, float)):
        return complex(entry, 0.0)
    if isinstance(entry, (list, tuple)) and len(entry) == 2:
        return complex(float(entry[0]), float(entry[1]))
    if isinstance(entry, str):
        return parse_complex(entry)
    raise ValueError(f"Unsupported complex point specification: {entry!r}")


def _as_list(values: object) -> list:
    if isinstance(values, (list, tuple)):
        return list(values)
    return [values]
