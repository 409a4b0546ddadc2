"""
Configuration
=============

Plain dataclasses, validated on construction (ValueError on bad values).

    PageRankParams      depth, damping
    MonteCarloParams    L, K, alpha, combine, first_visit, fan-out cap
    ProjectorParams     threshold, flags, strength/γ/clamps, target mode
    GradientParams      catchment-gradient motion and integrator
    SimulationConfig    all of the above + control-loop cadence

SimulationConfig.from_dict() accepts the nested-dict form used by the
runner script and the Brain message.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Optional

from foam_core.spec.constants import (
    CENTER_ALIASES,
    COMBINE_HARMONIC,
    COMBINE_MODES,
)

from .constants import (
    METHOD_ALIASES,
    METHOD_PAGERANK,
    METHOD_MONTECARLO,
    PAGERANK_DEPTH,
    PAGERANK_DAMPING,
    MC_STEPS,
    MC_WALKERS,
    MC_ALPHA,
    MOTION_MODES,
    MOTION_PROJECTOR,
    TARGET_ALIASES,
    TARGET_FACE,
    PROJECTOR_THRESHOLD,
    PROJECTOR_STRENGTH,
    PROJECTOR_GAMMA,
    PROJECTOR_MAX_SCALE,
    PROJECTOR_COMPLIANCE,
    PROJECTOR_CLAMP,
    PROJECTOR_ITERATIONS,
    GRADIENT_SCALE,
    GRADIENT_ENERGY,
    GRADIENT_DT,
    GRADIENT_MAX_DELTA,
    VERLET_DAMPING,
    RETRIANGULATE_EVERY,
    BRAIN_EVERY,
    DEFAULT_CENTERING,
)


def resolve_method(name: str) -> str:
    """Normalize a scoring method name ("mc" → "montecarlo")."""
    try:
        return METHOD_ALIASES[name]
    except KeyError:
        raise ValueError(
            f"Unknown scoring method {name!r}; expected one of {sorted(METHOD_ALIASES)}"
        ) from None


def _require_int(name: str, value, minimum: int):
    if isinstance(value, bool) or int(value) != value or value < minimum:
        raise ValueError(f"{name} must be an integer >= {minimum}, got {value!r}")


@dataclass
class PageRankParams:
    depth: int = PAGERANK_DEPTH
    damping: float = PAGERANK_DAMPING

    def __post_init__(self):
        _require_int("depth", self.depth, 0)
        if not (0.0 <= self.damping < 1.0):
            raise ValueError(f"damping must lie in [0, 1), got {self.damping}")

    def as_kwargs(self) -> dict:
        return {'depth': int(self.depth), 'damping': float(self.damping)}


@dataclass
class MonteCarloParams:
    L: int = MC_STEPS
    K: int = MC_WALKERS
    alpha: float = MC_ALPHA
    combine: str = COMBINE_HARMONIC
    first_visit: bool = False
    top_m: Optional[int] = None
    cum_prob: Optional[float] = None

    def __post_init__(self):
        _require_int("L", self.L, 0)
        _require_int("K", self.K, 1)
        if not (0.0 <= self.alpha <= 1.0):
            raise ValueError(f"alpha must lie in [0, 1], got {self.alpha}")
        if self.combine not in COMBINE_MODES:
            raise ValueError(
                f"Unknown combine mode {self.combine!r}; expected one of {COMBINE_MODES}"
            )
        if self.top_m is not None:
            _require_int("top_m", self.top_m, 1)
        if self.cum_prob is not None and not (0.0 < self.cum_prob <= 1.0):
            raise ValueError(f"cum_prob must lie in (0, 1], got {self.cum_prob}")

    def as_kwargs(self) -> dict:
        return {
            'L': int(self.L),
            'K': int(self.K),
            'alpha': float(self.alpha),
            'combine': self.combine,
            'first_visit': bool(self.first_visit),
            'top_m': self.top_m,
            'cum_prob': self.cum_prob,
        }


@dataclass
class ProjectorParams:
    """Constraint projector settings (see projector.py)."""
    threshold: float = PROJECTOR_THRESHOLD
    contractive: bool = False
    expansive: bool = True
    invert: bool = False
    strength: float = PROJECTOR_STRENGTH
    gamma: float = PROJECTOR_GAMMA
    max_scale: float = PROJECTOR_MAX_SCALE
    compliance: float = PROJECTOR_COMPLIANCE
    clamp: float = PROJECTOR_CLAMP
    iterations: int = PROJECTOR_ITERATIONS
    target: str = TARGET_FACE

    def __post_init__(self):
        try:
            self.target = TARGET_ALIASES[self.target]
        except KeyError:
            raise ValueError(
                f"Unknown target mode {self.target!r}; expected one of {sorted(TARGET_ALIASES)}"
            ) from None
        _require_int("iterations", self.iterations, 1)
        if self.gamma <= 0:
            raise ValueError(f"gamma must be positive, got {self.gamma}")
        for name in ('strength', 'max_scale', 'clamp'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")


@dataclass
class GradientParams:
    """Catchment-gradient motion settings (see gradient.py)."""
    scale: float = GRADIENT_SCALE
    energy: float = GRADIENT_ENERGY
    equilibration: bool = True
    contractive: bool = False
    expansive: bool = True
    edge_scale: bool = False
    dt: float = GRADIENT_DT
    max_delta: float = GRADIENT_MAX_DELTA
    use_verlet: bool = False
    damping: float = VERLET_DAMPING

    def __post_init__(self):
        if self.dt <= 0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if self.max_delta <= 0:
            raise ValueError(f"max_delta must be positive, got {self.max_delta}")
        if not (0.0 <= self.damping <= 1.0):
            raise ValueError(f"damping must lie in [0, 1], got {self.damping}")


_SECTIONS = {
    'pagerank': PageRankParams,
    'montecarlo': MonteCarloParams,
    'projector': ProjectorParams,
    'gradient': GradientParams,
}


@dataclass
class SimulationConfig:
    periodic: bool = True
    centering: str = DEFAULT_CENTERING
    method: str = METHOD_PAGERANK
    motion: str = MOTION_PROJECTOR
    retriangulate_every: int = RETRIANGULATE_EVERY
    brain_every: int = BRAIN_EVERY
    pagerank: PageRankParams = field(default_factory=PageRankParams)
    montecarlo: MonteCarloParams = field(default_factory=MonteCarloParams)
    projector: ProjectorParams = field(default_factory=ProjectorParams)
    gradient: GradientParams = field(default_factory=GradientParams)

    def __post_init__(self):
        self.method = resolve_method(self.method)
        if self.centering not in CENTER_ALIASES:
            raise ValueError(
                f"Unknown center method {self.centering!r}; expected one of {sorted(CENTER_ALIASES)}"
            )
        self.centering = CENTER_ALIASES[self.centering]
        if self.motion not in MOTION_MODES:
            raise ValueError(f"Unknown motion {self.motion!r}; expected one of {MOTION_MODES}")
        _require_int("retriangulate_every", self.retriangulate_every, 1)
        _require_int("brain_every", self.brain_every, 1)

    def method_params(self):
        """Parameter block of the active scoring method."""
        if self.method == METHOD_MONTECARLO:
            return self.montecarlo
        return self.pagerank

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        """
        Build from a (possibly nested) dict.

        Raises:
            ValueError on unknown keys or invalid values
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")

        for section, section_cls in _SECTIONS.items():
            value = data.get(section)
            if value is None or isinstance(value, section_cls):
                continue
            section_known = {f.name for f in fields(section_cls)}
            bad = sorted(set(value) - section_known)
            if bad:
                raise ValueError(f"Unknown keys in {section!r}: {bad}")
            data[section] = section_cls(**value)
        return cls(**data)
