from dataclasses import dataclass

import numpy as np

from drccopf.utils import as_vector

N_SPLITS = 10


@dataclass(frozen=True, eq=False)
class DRCostLinearization:
    """
    Piecewise-linear approximation of the demand-response cost.

    Attributes
    ----------
    nlc : 1-D array
        Cost at zero demand reduction, per bus.
    marginal_costs : 2-D array (n_splits, n_buses)
        Secant slope of each segment, non-decreasing along axis 0.
    split_width : 1-D array
        Width of the segments of each bus.
    """

    nlc: np.ndarray
    marginal_costs: np.ndarray
    split_width: np.ndarray

    @property
    def n_splits(self) -> int:
        return self.marginal_costs.shape[0]


def dr_cost(beta1, beta0, mu, x) -> np.ndarray:
    """
    Quadratic demand-response cost f(x) = x²/β1 - (β0 - μ)/β1 x - β0 μ/β1 per bus.
    """
    beta1 = np.asarray(beta1, dtype=float).flatten()
    n = beta1.shape[0]
    beta0 = as_vector(beta0, n, "beta0")
    mu = as_vector(mu, n, "mu")
    x = as_vector(x, n, "x")
    drc_a = 1 / beta1
    drc_b = -(beta0 - mu) / beta1
    drc_c = -(beta0 * mu) / beta1
    return drc_a * x**2 + drc_b * x + drc_c


def linearize_dr_cost(beta1, beta0, mu, x_max, n_splits: int = N_SPLITS):
    """
    Split [0, x_max] into equal segments and take the secant slope of the
    quadratic demand-response cost over each one.

    Parameters
    ----------
    beta1 : 1-D array, strictly positive
    beta0 : 1-D array or scalar
    mu : 1-D array or scalar, mean demand-response deviation
    x_max : 1-D array, largest demand reduction per bus (the bus load d_p)
    n_splits : number of segments

    Returns
    -------
    DRCostLinearization
    """
    beta1 = np.asarray(beta1, dtype=float).flatten()
    if np.any(beta1 <= 0):
        raise ValueError("beta1 must be strictly positive at every bus.")
    if int(n_splits) < 1:
        raise ValueError(f"n_splits must be at least 1. Instead got {n_splits}.")
    n = beta1.shape[0]
    x_max = as_vector(x_max, n, "x_max")
    split_w = x_max / n_splits
    mcs = np.zeros((n_splits, n))
    for s in range(n_splits):
        x_low = s * split_w
        x_up = (s + 1) * split_w
        with np.errstate(divide="ignore", invalid="ignore"):
            mc = (dr_cost(beta1, beta0, mu, x_up) - dr_cost(beta1, beta0, mu, x_low)) / split_w
        # zero-width segments
        mcs[s] = np.where(np.isfinite(mc), mc, 0.0)
    nlc = dr_cost(beta1, beta0, mu, np.zeros(n))
    return DRCostLinearization(nlc=nlc, marginal_costs=mcs, split_width=split_w)


def fill_segments(linearization: DRCostLinearization, x) -> np.ndarray:
    """
    Allocate x to the segments cheapest first.

    Returns
    -------
    x_split : 2-D array (n_splits, n_buses)
        Quantity in each segment. Quantities beyond x_max are not allocated.
    """
    w = linearization.split_width
    x = as_vector(x, w.shape[0], "x")
    s = np.arange(linearization.n_splits).reshape(-1, 1)
    return np.clip(x - s * w, 0, w)


def piecewise_cost(linearization: DRCostLinearization, x) -> np.ndarray:
    """Linearized demand-response cost of x per bus."""
    x_split = fill_segments(linearization, x)
    return linearization.nlc + np.sum(linearization.marginal_costs * x_split, axis=0)
