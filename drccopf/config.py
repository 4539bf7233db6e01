import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path

import numpy as np

# dispatch mode options
OPTIMIZE_DR = "optimize_dr"
PREDEFINED_DR = "predefined_dr"
MODES = (OPTIMIZE_DR, PREDEFINED_DR)
# mode names used by older case files
MODE_ALIASES = {"x_opf": OPTIMIZE_DR, "opf": PREDEFINED_DR}


@dataclass(frozen=True, eq=False)
class DispatchOptions:
    """
    Options of a single dispatch solve.

    Parameters
    ----------
    mode : str
        "optimize_dr": demand response is a decision variable.
        "predefined_dr": demand response is fixed to x_in.
    robust : bool
        (default True) Use distributionally robust chance constraints for voltage and
        generation limits. If False, use deterministic limits.
    enable_voltage : bool
        (default True) Enforce voltage limits.
    enable_generation : bool
        (default True) Enforce robust generation limits. Deterministic generation
        limits are always enforced since the problem is unbounded without them.
    enable_flow : bool
        (default True) Enforce line thermal limits.
    alpha : 1-D array or None
        Participation factors. Used as given if there is one per bus and they sum to 1,
        otherwise they are optimized (robust mode only).
    x_in : 1-D array or None
        Demand response used in "predefined_dr" mode. Zeros if missing or of the wrong size.
    v_root : float
        (default 1.0) Voltage magnitude at the root bus. Per Unit.
    tariff : float
        (default 30.0) Customer tariff.
    n_splits : int
        (default 10) Segments of the linearized demand-response cost.
    solver : str
        (default "CLARABEL") Solver to use with CVXPY. Must support semidefinite cones
        in robust mode.
    """

    mode: str = OPTIMIZE_DR
    robust: bool = True
    enable_voltage: bool = True
    enable_generation: bool = True
    enable_flow: bool = True
    alpha: tuple = None
    x_in: tuple = None
    v_root: float = 1.0
    tariff: float = 30.0
    n_splits: int = 10
    solver: str = "CLARABEL"

    def __post_init__(self):
        mode = MODE_ALIASES.get(self.mode, self.mode)
        if mode not in MODES:
            raise ValueError(
                f"Unknown mode '{self.mode}'. Valid options are {', '.join(MODES)}."
            )
        object.__setattr__(self, "mode", mode)
        if int(self.n_splits) < 1:
            raise ValueError(f"n_splits must be at least 1. Instead got {self.n_splits}.")
        for name in ["alpha", "x_in"]:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(
                    self, name, tuple(np.asarray(value, dtype=float).flatten())
                )

    @property
    def optimize_dr(self) -> bool:
        return self.mode == OPTIMIZE_DR

    def optimize_alpha(self, n_buses: int) -> bool:
        """
        False when alpha holds one factor per bus summing to 1.
        """
        if self.alpha is None or len(self.alpha) != n_buses:
            return True
        return abs(sum(self.alpha) - 1) >= 1e-8

    def replace(self, **kwargs):
        """Copy with some options changed."""
        return DispatchOptions.from_dict({**self.to_dict(), **kwargs})

    def to_dict(self) -> dict:
        config = asdict(self)
        for name in ["alpha", "x_in"]:
            if config[name] is not None:
                config[name] = list(config[name])
        return config

    @classmethod
    def from_dict(cls, config: dict):
        if not isinstance(config, dict):
            raise TypeError("config must be a dictionary.")
        valid = {f.name for f in fields(cls)}
        unknown = set(config) - valid
        if unknown:
            raise ValueError(f"Unknown options: {', '.join(sorted(unknown))}.")
        return cls(**config)

    @classmethod
    def from_json(cls, path):
        path = Path(path)
        if not path.suffix.lower() == ".json":
            raise ValueError("config file must be a JSON formatted file.")
        with open(path) as f:
            config = json.load(f)
        return cls.from_dict(config)

    def to_json(self, path):
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=4)
