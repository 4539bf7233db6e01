"""
Input models for demand-response uncertainty and demand-response cost.

The uncertain quantity ``ω`` is the deviation of the realized demand reduction
from the dispatched one. Its first and second moments are summarized by the
mean ``mu``, covariance ``sigma`` and the second-moment matrix ``omega``.
"""

from dataclasses import dataclass

import numpy as np

from drccopf.utils import as_vector


def second_moment_matrix(mu, sigma) -> np.ndarray:
    """
    Second-moment matrix of the lifted vector [ω, 1].

    Parameters
    ----------
    mu : 1-D array, mean of ω
    sigma : 2-D array, covariance of ω

    Returns
    -------
    omega : 2-D array of size (n+1, n+1)
        [[Σ + μμᵀ, μ], [μᵀ, 1]]
    """
    mu = np.asarray(mu, dtype=float).flatten()
    sigma = np.asarray(sigma, dtype=float)
    n = mu.shape[0]
    if sigma.shape != (n, n):
        raise ValueError(f"sigma must have shape ({n}, {n}). Instead got {sigma.shape}.")
    omega = np.zeros((n + 1, n + 1))
    omega[:n, :n] = sigma + np.outer(mu, mu)
    omega[:n, n] = mu
    omega[n, :n] = mu
    omega[n, n] = 1
    return omega


@dataclass(frozen=True, eq=False)
class UncertaintyModel:
    """Moment and support information of the demand-response deviation."""

    mu: np.ndarray
    sigma: np.ndarray
    eta_v: float = 0.1
    eta_g: float = 0.1
    omega: np.ndarray = None

    def __post_init__(self):
        mu = np.asarray(self.mu, dtype=float).flatten()
        n = mu.shape[0]
        sigma = np.asarray(self.sigma, dtype=float)
        if sigma.shape != (n, n):
            raise ValueError(
                f"sigma must have shape ({n}, {n}). Instead got {sigma.shape}."
            )
        omega = self.omega
        if omega is None:
            omega = second_moment_matrix(mu, sigma)
        omega = np.asarray(omega, dtype=float)
        if omega.shape != (n + 1, n + 1):
            raise ValueError(
                f"omega must have shape ({n + 1}, {n + 1}). Instead got {omega.shape}."
            )
        for name in ["eta_v", "eta_g"]:
            eta = getattr(self, name)
            if not 0 < eta < 1:
                raise ValueError(f"{name} must be in the open interval (0, 1). Got {eta}.")
        object.__setattr__(self, "mu", mu)
        object.__setattr__(self, "sigma", sigma)
        object.__setattr__(self, "omega", omega)

    @property
    def n(self) -> int:
        return self.mu.shape[0]

    @classmethod
    def from_relative_std(
        cls,
        feeder,
        relative_std: float,
        eta_v: float = 0.1,
        eta_g: float = 0.1,
        max_correlation: float = 0.0,
    ):
        """
        Zero-mean uncertainty with a standard deviation proportional to each bus load.

        Parameters
        ----------
        feeder : Feeder
        relative_std : standard deviation as a fraction of the active load d_p
        eta_v : risk tolerance of the voltage limits
        eta_g : risk tolerance of the generation limits
        max_correlation : correlation coefficient shared by every pair of buses

        Returns
        -------
        UncertaintyModel
        """
        if not 0 <= max_correlation <= 1:
            raise ValueError("max_correlation must be between 0 and 1.")
        std = relative_std * feeder.d_p
        corr = np.full((feeder.nb, feeder.nb), max_correlation)
        np.fill_diagonal(corr, 1.0)
        sigma = np.outer(std, std) * corr
        return cls(mu=np.zeros(feeder.nb), sigma=sigma, eta_v=eta_v, eta_g=eta_g)


@dataclass(frozen=True, eq=False)
class DRCostModel:
    """
    Quadratic demand-response cost per bus.

    The marginal price paid for a reduction x is ``λ(x) = (x - β0 - μ) / β1``
    and the total cost is ``(x + μ)(x - β0) / β1``.
    """

    beta1: np.ndarray
    beta0: np.ndarray

    def __post_init__(self):
        beta1 = np.asarray(self.beta1, dtype=float).flatten()
        beta0 = as_vector(self.beta0, beta1.shape[0], "beta0")
        if np.any(beta1 <= 0):
            raise ValueError("beta1 must be strictly positive at every bus.")
        object.__setattr__(self, "beta1", beta1)
        object.__setattr__(self, "beta0", beta0)

    @property
    def n(self) -> int:
        return self.beta1.shape[0]

    @classmethod
    def from_price(cls, n_buses: int, dr_price: float):
        return cls(beta1=np.ones(n_buses) / dr_price, beta0=np.zeros(n_buses))

    def marginal_price(self, x, mu) -> np.ndarray:
        x = as_vector(x, self.n, "x")
        mu = as_vector(mu, self.n, "mu")
        return (x - self.beta0 - mu) / self.beta1

    def cost(self, x, mu) -> np.ndarray:
        x = as_vector(x, self.n, "x")
        mu = as_vector(mu, self.n, "mu")
        return (x + mu) * (x - self.beta0) / self.beta1
