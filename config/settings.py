import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


ENV_CONFIG_PATH = "COGBATTERY_CONFIG"
ENV_SEED = "COGBATTERY_SEED"


class ConfigError(ValueError):
    """Invalid test configuration. Raised before any trial is generated."""


@dataclass(frozen=True)
class WindowConfig:
    width: int = 1024
    height: int = 640
    fps: int = 60
    title: str = "Cognitive Battery"


@dataclass(frozen=True)
class PhaseTimings:
    """Per-phase durations in ms. A zero duration skips FIXATION, CUE or PRE_TARGET."""
    fixation_ms: int = 400
    cue_ms: int = 100
    cue_target_interval_ms: int = 400  # cue onset -> target onset
    target_ms: int = 1700
    iti_ms: int = 1500
    advance_on_response: bool = True

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "advance_on_response":
                continue
            if not isinstance(value, int) or value < 0:
                raise ConfigError(f"{f.name} must be a non-negative integer, got {value!r}")
        if self.target_ms <= 0:
            raise ConfigError("target_ms must be positive")
        if self.cue_ms > self.cue_target_interval_ms:
            raise ConfigError("cue_ms cannot exceed cue_target_interval_ms")


@dataclass(frozen=True)
class AttentionNetworkConfig:
    cue_types: Tuple[str, ...] = ("none", "center", "spatial", "spatial")
    flanking: Tuple[str, ...] = ("congruent", "incongruent", "neutral")
    directions: Tuple[str, ...] = ("left", "right")
    positions: Tuple[str, ...] = ("above", "below")
    repetitions: int = 1
    timings: PhaseTimings = PhaseTimings()

    def factors(self) -> Dict[str, Tuple[str, ...]]:
        return {
            "cue": self.cue_types,
            "flanking": self.flanking,
            "direction": self.directions,
            "position": self.positions,
        }


@dataclass(frozen=True)
class StroopConfig:
    words: Tuple[str, ...] = ("RED", "BLUE", "GREEN", "YELLOW", "PURPLE")
    inks: Tuple[str, ...] = ("red", "blue", "green", "yellow", "purple")
    repetitions: int = 1
    timings: PhaseTimings = PhaseTimings(
        fixation_ms=500, cue_ms=0, cue_target_interval_ms=0, target_ms=3000, iti_ms=500
    )

    def factors(self) -> Dict[str, Tuple[str, ...]]:
        return {"word": self.words, "ink": self.inks}


@dataclass(frozen=True)
class NBackConfig:
    """Spatial n-back: lag 1-3, scored trials after the lag, square grid of positions."""
    lag: int = 2
    scored_trials: int = 20
    grid_size: int = 3
    target_probability: float = 0.3
    timings: PhaseTimings = PhaseTimings(
        fixation_ms=500,
        cue_ms=0,
        cue_target_interval_ms=0,
        target_ms=2000,
        iti_ms=500,
        advance_on_response=False,
    )

    @property
    def n_positions(self) -> int:
        return self.grid_size * self.grid_size


@dataclass(frozen=True)
class BatterySettings:
    """All test sections plus the host window and an optional fixed seed."""
    attention_network: AttentionNetworkConfig = AttentionNetworkConfig()
    stroop: StroopConfig = StroopConfig()
    nback: NBackConfig = NBackConfig()
    window: WindowConfig = WindowConfig()
    seed: Optional[int] = None

    def for_task(self, task_id: str):
        if task_id not in TASK_SECTIONS:
            raise ConfigError(f"Unknown test id: {task_id!r}")
        return getattr(self, task_id)


TASK_SECTIONS = ("attention_network", "stroop", "nback")


def _apply_overrides(section: Any, overrides: Dict[str, Any], name: str) -> Any:
    if not isinstance(overrides, dict):
        raise ConfigError(f"Section {name!r} must be an object")
    allowed = {f.name for f in fields(section)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed:
            raise ConfigError(f"Unknown setting {name}.{key}")
        if key == "timings":
            value = _apply_overrides(section.timings, value, f"{name}.timings")
        elif isinstance(value, list):
            value = tuple(value)
        changes[key] = value
    return replace(section, **changes)


def load_settings(path: Optional[Path] = None, env: Optional[Dict[str, str]] = None) -> BatterySettings:
    """Build settings from defaults, an optional JSON file and the environment.

    The file maps test ids (and ``window``/``seed``) to overrides, for example
    ``{"nback": {"lag": 3, "timings": {"target_ms": 2500}}}``. ``COGBATTERY_CONFIG``
    names the file when ``path`` is not given; ``COGBATTERY_SEED`` fixes the seed.
    """
    env = os.environ if env is None else env
    env_path = (env.get(ENV_CONFIG_PATH) or "").strip()
    if path is None and env_path:
        path = Path(env_path).expanduser()

    settings = BatterySettings()
    if path is not None and Path(path).exists():
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError(f"{path} must contain a JSON object")
        changes: Dict[str, Any] = {}
        for key, value in payload.items():
            if key == "seed":
                changes["seed"] = value
            elif key in TASK_SECTIONS or key == "window":
                changes[key] = _apply_overrides(getattr(settings, key), value, key)
            else:
                raise ConfigError(f"Unknown settings section {key!r}")
        settings = replace(settings, **changes)

    env_seed = (env.get(ENV_SEED) or "").strip()
    if env_seed:
        try:
            settings = replace(settings, seed=int(env_seed))
        except ValueError as exc:
            raise ConfigError(f"{ENV_SEED} must be an integer, got {env_seed!r}") from exc
    return settings
