"""
Check a dispatch for feasibility after observing the realized demand response and
compute the resulting balance, cost and revenue.
"""

import logging
import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd

from drccopf.feeder import Feeder
from drccopf.results import DispatchResult
from drccopf.utils import as_vector

logger = logging.getLogger(__name__)

IMBALANCE_TOL = 1e-7


@dataclass(frozen=True, eq=False)
class SettlementOutcome:
    """
    Realized outcome of a dispatch.

    Attributes
    ----------
    table : pd.DataFrame
        One row per bus: bus, name, loads, x_obs, alpha, gp, gq, v_real, v_violation,
        fp, fq, f_violation, revenue. ``revenue`` repeats total_revenue on every row.
    gen_cost : float
        Generation cost at the rebalanced output.
    dr_cost : float
        Demand response paid at the dispatch marginal prices.
    tariff_revenue : float
        Tariff collected on the load after demand response.
    total_revenue : float
        tariff_revenue - gen_cost - dr_cost
    imbalance_p : float
        Active power mismatch left after rebalancing.
    imbalance_q : float
        Reactive power mismatch left after rebalancing.
    """

    table: pd.DataFrame
    gen_cost: float
    dr_cost: float
    tariff_revenue: float
    total_revenue: float
    imbalance_p: float
    imbalance_q: float

    @property
    def violations(self) -> bool:
        return bool(
            (self.table.v_violation != "ok").any()
            or (self.table.f_violation != "ok").any()
        )


def run_settlement(
    feeder: Feeder,
    dispatch: DispatchResult,
    x_observed,
    tariff: float = None,
    v_root: float = None,
) -> SettlementOutcome:
    """
    Rebalance the dispatch for the observed demand response and check the limits.

    Parameters
    ----------
    feeder : Feeder
        The feeder the dispatch was computed for.
    dispatch : DispatchResult
    x_observed : 1-D array
        Observed demand reduction per bus. Negative values are set to 0.
    tariff : float
        Customer tariff. Defaults to the tariff of the dispatch options.
    v_root : float
        Root voltage magnitude. Defaults to the one of the dispatch options.

    Returns
    -------
    SettlementOutcome
    """
    n = feeder.nb
    if len(dispatch.table) != n:
        raise ValueError(
            f"The dispatch has {len(dispatch.table)} buses but the feeder has {n}."
        )
    if tariff is None:
        tariff = dispatch.options.tariff
    if v_root is None:
        v_root = dispatch.options.v_root
    x_observed = np.maximum(as_vector(x_observed, n, "x_observed"), 0)

    gp_opt = dispatch.column("gp")
    gq_opt = dispatch.column("gq")
    alpha = dispatch.column("alpha")
    lam = dispatch.column("lambda")
    if np.isnan(gp_opt).any() or np.isnan(alpha).any():
        raise ValueError(
            f"Cannot settle a dispatch that was not solved (status: {dispatch.status})."
        )

    loads = feeder.d_p
    load_after_dr = loads - x_observed
    load_after_dr_q = feeder.d_q - feeder.tanphi * x_observed
    error_sum = load_after_dr.sum() - gp_opt.sum()
    error_sum_q = load_after_dr_q.sum() - gq_opt.sum()

    gp_balanced = gp_opt + alpha * error_sum
    gq_balanced = gq_opt + alpha * error_sum_q

    gen_cost = float(feeder.gen_cost @ gp_balanced)
    dr_cost = float(lam @ x_observed)
    tariff_revenue = float(tariff * load_after_dr.sum())
    total_revenue = tariff_revenue - gen_cost - dr_cost

    # ~~~~~~~~~~ flows and voltages ~~~~~~~~~~
    net_load = load_after_dr - gp_balanced
    net_load_q = load_after_dr_q - gq_balanced
    imbalance_p = float(net_load.sum())
    imbalance_q = float(net_load_q.sum())
    if abs(imbalance_p) > IMBALANCE_TOL:
        message = (
            f"High active power imbalance ({abs(imbalance_p)}), "
            "check if everything was solved correctly"
        )
        logger.warning(message)
        warnings.warn(message, RuntimeWarning)
    if abs(imbalance_q) > IMBALANCE_TOL:
        message = (
            f"High reactive power imbalance ({abs(imbalance_q)}), "
            "check if everything was solved correctly"
        )
        logger.warning(message)
        warnings.warn(message, RuntimeWarning)

    lines = feeder.line_idx
    fp = np.zeros(n)
    fq = np.zeros(n)
    fp[lines] = feeder.A @ net_load
    fq[lines] = feeder.A @ net_load_q
    v = v_root**2 * np.ones(n) - 2 * feeder.A.T @ (
        feeder.R @ fp[lines] + feeder.X @ fq[lines]
    )

    # ~~~~~~~~~~ violations ~~~~~~~~~~
    v_violation = np.full(n, "ok", dtype=object)
    v_violation[v > feeder.v_max**2] = "high"
    v_violation[v < feeder.v_min**2] = "low"
    f_violation = np.full(n, "ok", dtype=object)
    s = np.sqrt(fp[lines] ** 2 + fq[lines] ** 2)
    f_violation[lines[s > feeder.s_max[lines]]] = "high"

    table = pd.DataFrame(
        {
            "bus": feeder.bus.id.to_numpy(),
            "name": feeder.bus.name.to_numpy(),
            "loads": loads,
            "x_obs": x_observed,
            "alpha": alpha,
            "gp": gp_balanced,
            "gq": gq_balanced,
            "v_real": np.sqrt(np.maximum(v, 0)),
            "v_violation": v_violation,
            "fp": fp,
            "fq": fq,
            "f_violation": f_violation,
            "revenue": np.full(n, total_revenue),
        }
    )
    return SettlementOutcome(
        table=table,
        gen_cost=gen_cost,
        dr_cost=dr_cost,
        tariff_revenue=tariff_revenue,
        total_revenue=total_revenue,
        imbalance_p=imbalance_p,
        imbalance_q=imbalance_q,
    )
