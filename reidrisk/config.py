"""
Configuration objects and YAML loading.

A YAML file mirrors RiskConfig, with the solver settings nested:

    quasi_identifiers: [age, gender, zipcode]
    sampling_fraction: 0.1
    risk_threshold: 0.2
    wildcard_token: "*"
    attribute_model: dankar
    show_progress: true
    solver:
      accuracy: 1.0e-9
      max_iterations: 300
      max_tries: 100
      seed: 42

Author: James Weatherhead, UTMB (jacweath@utmb.edu)
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

from .errors import InvalidArgumentError

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverConfiguration:
    """
    Settings of the Newton-Raphson solver.

    Attributes:
        accuracy: Residual norm at which the iteration stops
        max_iterations: Iteration budget per attempt
        max_tries: Attempts from random starting points, for models that
                   have no closed-form initial guess
        seed: Seed of the random starting points; None draws fresh entropy
    """
    accuracy: float = 1e-9
    max_iterations: int = 300
    max_tries: int = 100
    seed: Optional[int] = None

    def __post_init__(self):
        if not self.accuracy > 0:
            raise InvalidArgumentError(f"Solver accuracy must be positive, got {self.accuracy}")
        if self.max_iterations < 1:
            raise InvalidArgumentError(
                f"Solver max_iterations must be at least 1, got {self.max_iterations}"
            )
        if self.max_tries < 1:
            raise InvalidArgumentError(f"Solver max_tries must be at least 1, got {self.max_tries}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_threshold(value: float, name: str = "Risk threshold") -> float:
    """Check that a probability-like threshold lies in [0, 1]."""
    if value is None or not 0.0 <= value <= 1.0:
        raise InvalidArgumentError(f"{name} must be in [0, 1], got {value}")
    return float(value)


def validate_sampling_fraction(value: float) -> float:
    """Check that a sampling fraction lies in (0, 1]."""
    if value is None or not 0.0 < value <= 1.0:
        raise InvalidArgumentError(f"Sampling fraction must be in (0, 1], got {value}")
    return float(value)


@dataclass
class RiskConfig:
    """
    Settings of one risk analysis.

    Attributes:
        quasi_identifiers: Attribute names to group by
        sampling_fraction: Sample size divided by population size
        risk_threshold: Threshold for the records-at-risk measures
        wildcard_token: Value treated as "matches anything" by the wildcard model
        attribute_model: Population model used by attribute analysis,
                         None for the sample-based variant
        show_progress: Draw a tqdm progress bar
        solver: Newton-Raphson settings
    """
    quasi_identifiers: List[str] = field(default_factory=list)
    sampling_fraction: float = 1.0
    risk_threshold: float = 0.2
    wildcard_token: str = "*"
    attribute_model: Optional[str] = None
    show_progress: bool = False
    solver: SolverConfiguration = field(default_factory=SolverConfiguration)

    def __post_init__(self):
        validate_sampling_fraction(self.sampling_fraction)
        validate_threshold(self.risk_threshold)
        if not self.wildcard_token:
            raise InvalidArgumentError("Wildcard token must not be empty")

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> "RiskConfig":
        """
        Build a configuration from a (parsed YAML) mapping.

        Raises:
            InvalidArgumentError: On unknown keys or invalid values
        """
        values = dict(values or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidArgumentError(f"Unknown configuration keys: {unknown}")

        solver_values = values.pop('solver', None) or {}
        solver_known = {f.name for f in fields(SolverConfiguration)}
        unknown = sorted(set(solver_values) - solver_known)
        if unknown:
            raise InvalidArgumentError(f"Unknown solver configuration keys: {unknown}")

        if 'quasi_identifiers' in values:
            quasi_identifiers = values['quasi_identifiers'] or []
            if isinstance(quasi_identifiers, str):
                quasi_identifiers = [quasi_identifiers]
            values['quasi_identifiers'] = list(quasi_identifiers)
        return cls(solver=SolverConfiguration(**solver_values), **values)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['solver'] = self.solver.to_dict()
        return result


def load_config(config_path: str) -> RiskConfig:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        values = yaml.safe_load(f)
    logger.info(f"Loaded configuration from {config_path}")
    return RiskConfig.from_dict(values)
