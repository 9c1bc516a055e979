"""Scene configuration dataclasses and loader utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

logger = logging.getLogger(__name__)

BOUNDARY_KINDS = ("none", "sticky", "sliding", "friction", "velocity_diminish")
BODY_SHAPES = ("ball", "cube", "tetra_mesh")
MATERIALS = ("none", "elastic", "snow")


@dataclass
class SimulationConfig:
    time_step: float = 0.01  # seconds (s)
    total_steps: int = 500
    gravity: Sequence[float] = (0.0, -9.8, 0.0)  # meters per second squared (m/s^2)
    pic_ratio: float = 0.05
    apply_hardening: bool = False
    debug_interval: int = 100
    seed: Optional[int] = None


@dataclass
class GridConfig:
    size: Sequence[float] = (1.0, 1.0, 1.0)  # meters (m)
    dx: float = 0.02  # meters (m)
    particle_density: float = 2.0  # samples per cell width


@dataclass
class BoundaryConfig:
    kind: str = "sticky"
    thickness: float = 0.04  # meters (m)
    mu: float = 1.0  # friction coefficient
    factor: float = 0.5  # velocity_diminish scale


@dataclass
class MaterialConfig:
    kind: str = "none"
    youngs_modulus: float = 1.4e5  # Pascals (Pa)
    poisson_ratio: float = 0.2


@dataclass
class BodyConfig:
    name: str
    shape: str
    mass: float  # kilograms (kg)
    center: Sequence[float] = (0.5, 0.5, 0.5)  # meters (m), ball only
    radius: float = 0.1  # meters (m), ball only
    min_corner: Sequence[float] = (0.4, 0.4, 0.4)  # meters (m), cube only
    max_corner: Sequence[float] = (0.6, 0.6, 0.6)  # meters (m), cube only
    mesh_path: Optional[Path] = None  # tetra_mesh only
    translation: Sequence[float] = (0.0, 0.0, 0.0)  # meters (m), tetra_mesh only
    rotation: Sequence[float] = (0.0, 0.0, 0.0, 1.0)  # unit quaternion (x, y, z, w)
    scale: float = 1.0
    velocity: Sequence[float] = (0.0, 0.0, 0.0)  # meters per second (m/s)
    material: MaterialConfig = field(default_factory=MaterialConfig)
    hidden_portion: float = 0.0


@dataclass
class ExportConfig:
    output_root: Path
    dump_skip: int = 10


@dataclass
class SceneConfig:
    scene_name: str
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    boundary: BoundaryConfig = field(default_factory=BoundaryConfig)
    bodies: List[BodyConfig] = field(default_factory=list)
    export: Optional[ExportConfig] = None


def _coerce_path(base_dir: Path, path_value: str | Path) -> Path:
    path = Path(path_value)
    return path if path.is_absolute() else (base_dir / path)


def _choice(value: str, allowed: Sequence[str], key: str) -> str:
    value = str(value).lower()
    if value not in allowed:
        raise ValueError(f"{key}: expected one of {', '.join(allowed)}, got {value!r}")
    return value


def _number(kind: type) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        if isinstance(value, bool):
            raise TypeError("booleans are not numbers")
        # PyYAML reads exponents without a sign ("1.0e4") as strings
        return kind(float(value)) if kind is int and isinstance(value, str) else kind(value)

    return convert


def _vector(length: int) -> Callable[[Any], Any]:
    def convert(value: Any) -> tuple:
        values = tuple(float(v) for v in value)
        if len(values) != length:
            raise ValueError(f"expected {length} components, got {len(values)}")
        return values

    return convert


def _flag(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected true or false, got {value!r}")
    return value


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else _number(int)(value)


# Field name -> converter, shared by every section
_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "time_step": _number(float),
    "total_steps": _number(int),
    "gravity": _vector(3),
    "pic_ratio": _number(float),
    "apply_hardening": _flag,
    "debug_interval": _number(int),
    "seed": _optional_int,
    "size": _vector(3),
    "dx": _number(float),
    "particle_density": _number(float),
    "thickness": _number(float),
    "mu": _number(float),
    "factor": _number(float),
    "youngs_modulus": _number(float),
    "poisson_ratio": _number(float),
    "mass": _number(float),
    "center": _vector(3),
    "radius": _number(float),
    "min_corner": _vector(3),
    "max_corner": _vector(3),
    "translation": _vector(3),
    "rotation": _vector(4),
    "scale": _number(float),
    "velocity": _vector(3),
    "hidden_portion": _number(float),
    "dump_skip": _number(int),
}


def _fields(raw: Any, cls: type, key: str) -> Dict[str, Any]:
    """Check ``raw`` against the fields of ``cls`` and convert known values."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{key}: expected a mapping, got {type(raw).__name__}")
    known = {f.name for f in fields(cls) if f.init}
    unknown = sorted(str(name) for name in raw if name not in known)
    if unknown:
        raise ValueError(f"{key}: unknown keys {', '.join(unknown)}")

    values = {}
    for name, value in raw.items():
        converter = _CONVERTERS.get(name)
        if converter is None:
            values[name] = value
            continue
        try:
            values[name] = converter(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key}.{name}: invalid value {value!r} ({exc})") from exc
    return values


def _require_positive(value: float, key: str) -> None:
    if value <= 0.0:
        raise ValueError(f"{key} must be positive, got {value}")


def _material(raw: Any, key: str) -> MaterialConfig:
    if raw is None:
        return MaterialConfig()
    if isinstance(raw, str):
        return MaterialConfig(kind=_choice(raw, MATERIALS, key))
    material = MaterialConfig(**_fields(raw, MaterialConfig, key))
    material.kind = _choice(material.kind, MATERIALS, f"{key}.kind")
    return material


def _body(entry: Any, base_dir: Path, index: int) -> BodyConfig:
    key = f"bodies[{index}]"
    if not isinstance(entry, dict):
        raise ValueError(f"{key}: expected a mapping, got {type(entry).__name__}")
    entry = dict(entry)
    name = str(entry.pop("name", f"body_{index}"))
    if "shape" not in entry or "mass" not in entry:
        raise KeyError(f"{key} ({name}) needs 'shape' and 'mass'")
    shape = _choice(entry.pop("shape"), BODY_SHAPES, f"{key}.shape")
    material = _material(entry.pop("material", None), f"{key}.material")
    values = _fields(entry, BodyConfig, key)
    if values.get("mesh_path") is not None:
        values["mesh_path"] = _coerce_path(base_dir, values["mesh_path"])
    body = BodyConfig(name=name, shape=shape, material=material, **values)
    if shape == "tetra_mesh" and body.mesh_path is None:
        raise KeyError(f"{key} ({name}) is a tetra_mesh without 'mesh_path'")
    _require_positive(body.mass, f"{key}.mass")
    if not 0.0 <= body.hidden_portion <= 1.0:
        raise ValueError(f"{key}.hidden_portion must lie in [0, 1], got {body.hidden_portion}")
    return body


def load_scene_config(config_path: str | Path) -> SceneConfig:
    """Load a scene configuration from YAML."""
    path = Path(config_path).expanduser().resolve()
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: expected a mapping at the top level")

    base_dir = path.parent

    simulation = SimulationConfig(**_fields(raw.get("simulation"), SimulationConfig, "simulation"))
    _require_positive(simulation.time_step, "simulation.time_step")

    grid = GridConfig(**_fields(raw.get("grid"), GridConfig, "grid"))
    _require_positive(grid.dx, "grid.dx")
    _require_positive(grid.particle_density, "grid.particle_density")

    boundary = BoundaryConfig(**_fields(raw.get("boundary"), BoundaryConfig, "boundary"))
    boundary.kind = _choice(boundary.kind, BOUNDARY_KINDS, "boundary.kind")

    bodies = [_body(entry, base_dir, i) for i, entry in enumerate(raw.get("bodies") or [])]
    if not bodies:
        logger.warning("Scene %s defines no bodies", path.name)

    export = None
    export_cfg = raw.get("export")
    if export_cfg:
        values = _fields(export_cfg, ExportConfig, "export")
        if "output_root" not in values:
            raise KeyError("export needs 'output_root'")
        values["output_root"] = _coerce_path(base_dir, values["output_root"])
        export = ExportConfig(**values)
        if export.dump_skip < 1:
            raise ValueError(f"export.dump_skip must be at least 1, got {export.dump_skip}")

    return SceneConfig(
        scene_name=str(raw.get("scene_name", path.stem)),
        simulation=simulation,
        grid=grid,
        boundary=boundary,
        bodies=bodies,
        export=export,
    )
