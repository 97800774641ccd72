from dataclasses import asdict, dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


RUN_RUNNING = "running"
RUN_COMPLETE = "complete"
RUN_CANCELLED = "cancelled"


@dataclass(frozen=True)
class TrialSpec:
    """
    One trial before it runs.

    factors   : crossed design levels, e.g. (("cue", "center"), ("direction", "left"))
    conditions: levels derived from the factors, e.g. (("congruency", "incongruent"),)
    is_target : n-back only; None for the lag trials and for non-detection tests
    """
    trial_index: int
    task_id: str
    factors: Tuple[Tuple[str, str], ...]
    expected_response: Optional[str]
    conditions: Tuple[Tuple[str, str], ...] = ()
    is_target: Optional[bool] = None
    stimulus: Any = None

    def level(self, name: str) -> Optional[str]:
        for key, value in self.factors + self.conditions:
            if key == name:
                return value
        return None

    def combination(self) -> Tuple[str, ...]:
        return tuple(value for _, value in self.factors)


@dataclass(frozen=True)
class RecordedResponse:
    """What happened on one trial. Produced exactly once per trial, never changed."""
    trial: TrialSpec
    response: Optional[str]  # None on timeout
    correct: bool
    reaction_time_ms: int
    responded_at_ms: int

    @property
    def is_timeout(self) -> bool:
        return self.response is None


@dataclass
class RunState:
    """A run in progress, owned by one PresentationTimeline; responses stay in trial order."""
    run_id: str
    task_id: str
    trials: Tuple[TrialSpec, ...]
    started_ms: int
    current_index: int = 0
    responses: List[RecordedResponse] = field(default_factory=list)
    status: str = RUN_RUNNING

    @property
    def total(self) -> int:
        return len(self.trials)

    @property
    def current_trial(self) -> Optional[TrialSpec]:
        if self.current_index >= len(self.trials):
            return None
        return self.trials[self.current_index]

    @property
    def is_complete(self) -> bool:
        return self.status == RUN_COMPLETE

    @property
    def is_active(self) -> bool:
        return self.status == RUN_RUNNING

    def append_response(self, recorded: RecordedResponse) -> None:
        """Append the response for the current trial. Anything else is a programming error."""
        expected = self.current_index
        if recorded.trial.trial_index != expected or len(self.responses) != expected:
            raise RuntimeError(
                f"Response for trial {recorded.trial.trial_index} out of order (expected {expected})"
            )
        self.responses.append(recorded)


@dataclass(frozen=True)
class DetectionScore:
    lag: int
    hits: int
    misses: int
    false_alarms: int
    correct_rejections: int
    hit_rate: float
    false_alarm_rate: float
    d_prime: float
    sensitivity: float  # d' clamped to >= 0


@dataclass(frozen=True)
class ScoreReport:
    """
    Everything a finished run is scored into.

    The per-factor tables are keyed factor -> level:
    - factor_rt_ms: mean RT of correct answered trials
    - factor_rts_ms: the RTs behind that mean, in presentation order
    - factor_accuracy: share of scored trials answered correctly

    Mapping fields are read-only views, so a report cannot be edited after
    scoring. as_dict() gives plain dicts and lists for JSON.
    """
    task_id: str
    run_id: str
    total_trials: int
    scored_trials: int
    correct: int
    accuracy: float
    mean_rt_ms: float
    rt_sd_ms: float
    factor_rt_ms: Mapping[str, Mapping[str, float]]
    factor_rts_ms: Mapping[str, Mapping[str, Tuple[int, ...]]]
    factor_accuracy: Mapping[str, Mapping[str, float]]
    efficiencies: Mapping[str, float]   # clamped to >= 0
    raw_effects_ms: Mapping[str, float]  # signed
    detection: Optional[DetectionScore] = None

    def __post_init__(self) -> None:
        for name in ("factor_rt_ms", "factor_accuracy"):
            table = {factor: MappingProxyType(dict(levels)) for factor, levels in getattr(self, name).items()}
            object.__setattr__(self, name, MappingProxyType(table))
        rts = {
            factor: MappingProxyType({level: tuple(values) for level, values in levels.items()})
            for factor, levels in self.factor_rts_ms.items()
        }
        object.__setattr__(self, "factor_rts_ms", MappingProxyType(rts))
        for name in ("efficiencies", "raw_effects_ms"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def as_dict(self) -> Dict[str, Any]:
        payload = {f.name: _plain(getattr(self, f.name)) for f in fields(self)}
        payload["detection"] = asdict(self.detection) if self.detection is not None else None
        return payload


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return list(value)
    return value


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted when a trial starts, for progress display."""
    run_id: str
    trial_index: int
    total: int


@dataclass(frozen=True)
class PhaseEvent:
    """Emitted on every phase entry; stimulus is descriptive only."""
    run_id: str
    trial_index: int
    phase: str
    started_ms: int
    duration_ms: int
    stimulus: Dict[str, Any]
