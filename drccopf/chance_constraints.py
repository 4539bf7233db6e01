"""
Distributionally robust chance constraints.

A limit on a quantity that depends linearly on the demand-response deviation ω,

    Prob(q0 + aᵀω <= limit) >= 1 - η,

is replaced by the CVaR-based sufficient condition that holds for every
distribution of ω with second-moment matrix Ω:

    s + 1/η · trace(Ω Mᵀ) <= 0,
    M ⪰ 0,
    M ⪰ O = [[0, a/2], [aᵀ/2, q0 - limit - s]].

The sensitivities ``a`` come from the LinDistFlow relations after the
imbalance caused by ω is shared among generators with participation factors α.
"""

import cvxpy as cp
import numpy as np


def participation_matrix(alpha, n: int):
    """
    C = α eᵀ - I. Works with a fixed α (numpy) or an α decision variable (cvxpy).
    """
    if isinstance(alpha, cp.Expression):
        return cp.reshape(alpha, (n, 1), order="F") @ np.ones((1, n)) - np.eye(n)
    alpha = np.asarray(alpha, dtype=float).flatten()
    return np.outer(alpha, np.ones(n)) - np.eye(n)


def voltage_sensitivity(feeder, alpha):
    """
    Sensitivity of the squared bus voltages to the demand-response deviation.

    A realized reduction ω changes the net load by C ω, the flows by A C ω (and
    A C γ ω for reactive power), so the squared voltages move by
    -2 Aᵀ (R A C + X A C γ) ω.

    Parameters
    ----------
    feeder : Feeder
    alpha : 1-D array or cp.Variable, participation factors

    Returns
    -------
    sens : 2-D array or cp.Expression (n_buses, n_buses)
        Row b is the sensitivity vector of bus b. The root row is zero.
    """
    c = participation_matrix(alpha, feeder.nb)
    ra = feeder.R @ feeder.A
    xa = feeder.X @ feeder.A
    t = ra @ c + xa @ c @ feeder.gamma
    return -2 * feeder.A.T @ t


def generation_sensitivity(alpha_b, n: int):
    """Sensitivity of the active generation of one generator: -α_b e."""
    return -alpha_b * np.ones(n)


def reactive_generation_sensitivity(alpha_b, gamma):
    """Sensitivity of the reactive generation of one generator: -α_b γ e."""
    return -alpha_b * np.diag(gamma)


class DRChanceConstraint:
    """
    Conic reformulation of one chance constraint ``margin + aᵀω <= 0``.

    Parameters
    ----------
    margin : cp.Expression
        Forecast value minus limit, q0 - limit.
    sensitivity : 1-D array or cp.Expression
        a, change of the constrained quantity per unit of ω.
    eta : float
        Allowed violation probability.
    omega : 2-D array
        Second-moment matrix of [ω, 1].
    name : str
        Suffix for the auxiliary variable names.
    """

    def __init__(self, margin, sensitivity, eta: float, omega: np.ndarray, name=""):
        n = omega.shape[0] - 1
        self.name = name
        self.s = cp.Variable(name=f"s_{name}")
        self.m = cp.Variable((n + 1, n + 1), symmetric=True, name=f"M_{name}")
        # M - O, kept as its own PSD variable so the PSD cone only sees symmetric variables
        self.z = cp.Variable((n + 1, n + 1), PSD=True, name=f"Z_{name}")
        half = cp.reshape(0.5 * sensitivity, (n, 1), order="F")
        corner = cp.reshape(margin - self.s, (1, 1), order="F")
        self.o = cp.bmat([[np.zeros((n, n)), half], [half.T, corner]])
        self.cvar = self.s + (1 / eta) * cp.trace(omega @ self.m.T)
        self.constraints = [
            self.m >> 0,
            self.m - self.o == self.z,
            self.cvar <= 0,
        ]


def upper_chance_constraint(q0, sensitivity, limit, eta, omega, name=""):
    """Prob(q0 + aᵀω <= limit) >= 1 - η"""
    return DRChanceConstraint(q0 - limit, sensitivity, eta, omega, name=name)


def lower_chance_constraint(q0, sensitivity, limit, eta, omega, name=""):
    """Prob(q0 + aᵀω >= limit) >= 1 - η"""
    return DRChanceConstraint(limit - q0, -sensitivity, eta, omega, name=name)


def chance_constraint_family(
    buses, quantity, sensitivities, limits, eta, omega, upper=True, name=""
):
    """
    One chance constraint per bus.

    Parameters
    ----------
    buses : iterable of bus indices
    quantity : cp.Variable indexed by bus (e.g. v or gp)
    sensitivities : callable, bus index -> sensitivity vector
    limits : 1-D array indexed by bus
    eta : allowed violation probability
    omega : second-moment matrix
    upper : True for ``<= limit``, False for ``>= limit``
    name : family name used for the auxiliary variables

    Returns
    -------
    list of DRChanceConstraint
    """
    encode = upper_chance_constraint if upper else lower_chance_constraint
    return [
        encode(quantity[b], sensitivities(b), limits[b], eta, omega, name=f"{name}_{b}")
        for b in buses
    ]
