"""
Experiment configuration - simulation, shrinkage and reporting settings
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from dotenv import load_dotenv

from ..exceptions import InvalidParameter

# Directory settings
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
RESULTS_DIR = PROJECT_ROOT / "results"
DATA_DIR = RESULTS_DIR / "data"
REPORTS_DIR = RESULTS_DIR / "reports"

# Simulation parameters (A/A scenario from the walkthrough)
SIMULATION_CONFIG = {
    "population_size": 1_000_000,
    "correlation": 0.40,
    "experiment_count": 1000,
    "seed": 1,
    "confidence_level": 0.95,
    "empirical": True,  # exact sample correlation
    "metric_names": ["metric_a", "metric_b"],
}

# True effects injected into a share of experiments (0 = pure A/A test)
EFFECT_CONFIG = {
    "effect_share": 0.0,
    "effect_sizes": {"metric_a": 0.0, "metric_b": 0.0},
}

# Adaptive shrinkage settings, mashr defaults
MASH_CONFIG = {
    "z_thresh": 2.0,
    "grid_mult": float(np.sqrt(2.0)),
    "use_point_mass": True,
    "null_weight": 10.0,
    "simple_het_correlations": [0.25, 0.5, 0.75],
    "max_iter": 1000,
    "tol": 1e-8,
}

# Reporting settings
REPORT_CONFIG = {
    "lfsr_threshold": 0.05,
    "sharing_factor": 0.5,
    "float_format": "%.6f",
}

# Environment variables recognised by load_config()
ENV_OVERRIDES = {
    "AB_MASH_POPULATION_SIZE": ("population_size", int),
    "AB_MASH_CORRELATION": ("correlation", float),
    "AB_MASH_EXPERIMENT_COUNT": ("experiment_count", int),
    "AB_MASH_SEED": ("seed", int),
    "AB_MASH_CONFIDENCE_LEVEL": ("confidence_level", float),
}


@dataclass
class SimulationConfig:
    """Parameters of one simulation run"""

    population_size: int = SIMULATION_CONFIG["population_size"]
    correlation: float = SIMULATION_CONFIG["correlation"]
    experiment_count: int = SIMULATION_CONFIG["experiment_count"]
    seed: int = SIMULATION_CONFIG["seed"]
    confidence_level: float = SIMULATION_CONFIG["confidence_level"]
    empirical: bool = SIMULATION_CONFIG["empirical"]
    metric_names: List[str] = field(
        default_factory=lambda: list(SIMULATION_CONFIG["metric_names"])
    )
    effect_share: float = EFFECT_CONFIG["effect_share"]
    effect_sizes: Dict[str, float] = field(
        default_factory=lambda: dict(EFFECT_CONFIG["effect_sizes"])
    )

    @property
    def alpha(self) -> float:
        return 1.0 - self.confidence_level

    def validate(self) -> "SimulationConfig":
        """Check ranges; raises InvalidParameter"""
        if self.population_size < 2:
            raise InvalidParameter(
                f"population_size must be at least 2, got {self.population_size}"
            )
        if not -1.0 < self.correlation < 1.0:
            raise InvalidParameter(
                f"correlation must lie in (-1, 1), got {self.correlation}"
            )
        if not 1 <= self.experiment_count <= self.population_size:
            raise InvalidParameter(
                f"experiment_count must lie in [1, population_size], got {self.experiment_count}"
            )
        if not 0.0 < self.confidence_level < 1.0:
            raise InvalidParameter(
                f"confidence_level must lie in (0, 1), got {self.confidence_level}"
            )
        if not 0.0 <= self.effect_share <= 1.0:
            raise InvalidParameter(
                f"effect_share must lie in [0, 1], got {self.effect_share}"
            )
        if len(self.metric_names) != 2 or len(set(self.metric_names)) != 2:
            raise InvalidParameter(
                f"exactly two distinct metric names are required, got {self.metric_names}"
            )
        unknown = {m for m, lift in self.effect_sizes.items() if lift} - set(self.metric_names)
        if unknown:
            raise InvalidParameter(f"effect_sizes names unknown metrics: {sorted(unknown)}")
        return self

    def to_dict(self) -> Dict:
        return asdict(self)


def _read_env_overrides() -> Dict:
    overrides = {}
    for env_name, (key, cast) in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        try:
            overrides[key] = cast(raw)
        except ValueError as exc:
            raise InvalidParameter(f"{env_name}={raw!r} is not a valid {cast.__name__}") from exc
    return overrides


def load_config(overrides: Optional[Dict] = None, use_env: bool = True) -> SimulationConfig:
    """
    Build a validated SimulationConfig

    Defaults come from SIMULATION_CONFIG / EFFECT_CONFIG, then AB_MASH_*
    environment variables (a local .env file is honoured), then `overrides`.

    Args:
        overrides: Explicit option values, highest precedence
        use_env: Read AB_MASH_* environment variables

    Returns:
        Validated configuration
    """
    values = {}
    if use_env:
        load_dotenv()
        values.update(_read_env_overrides())
    if overrides:
        unknown = set(overrides) - set(SimulationConfig.__dataclass_fields__)
        if unknown:
            raise InvalidParameter(f"Unrecognised configuration options: {sorted(unknown)}")
        values.update(overrides)
    return SimulationConfig(**values).validate()


def ensure_result_dirs() -> None:
    """Create the results directories if missing"""
    for dir_path in [RESULTS_DIR, DATA_DIR, REPORTS_DIR]:
        dir_path.mkdir(parents=True, exist_ok=True)
