from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.optimize import OptimizeResult

from drccopf.config import DispatchOptions
from drccopf.dr_cost import piecewise_cost
from drccopf.lindist_dr import LinDistModelDR
from drccopf.utils import clean_noise

RESULT_COLUMNS = [
    "bus",
    "name",
    "d_p",
    "gp",
    "gq",
    "alpha",
    "x_opt",
    "mp",
    "mq",
    "lambda",
    "dr_cost",
    "v_real",
    "objective",
    "fp",
    "fq",
]


@dataclass(frozen=True, eq=False)
class DispatchResult:
    """
    Outcome of one dispatch solve.

    Attributes
    ----------
    table : pd.DataFrame
        One row per bus (0-based index) with the columns in RESULT_COLUMNS.
    status : str
        Solver status.
    success : bool
    objective : float
    runtime : float
        Solve time in seconds.
    options : DispatchOptions
        Options the dispatch was computed with.
    """

    table: pd.DataFrame
    status: str
    success: bool
    objective: float
    runtime: float
    options: DispatchOptions

    def column(self, name: str) -> np.ndarray:
        return self.table[name].to_numpy(dtype=float)


def _value(x, n):
    if x is None:
        return np.full(n, np.nan)
    return np.asarray(x, dtype=float).flatten()


def get_voltages(model: LinDistModelDR, result: OptimizeResult) -> pd.DataFrame:
    """
    Voltage magnitudes. Negative squared voltages (numerical noise) are clamped to 0.
    """
    fdr = model.feeder
    v_squared = _value(result.x.get("v"), fdr.nb)
    with np.errstate(invalid="ignore"):
        v_real = np.where(v_squared >= 0, np.sqrt(np.abs(v_squared)), 0.0)
    v_real[np.isnan(v_squared)] = np.nan
    v_df = pd.DataFrame(
        {"id": fdr.bus.id.to_numpy(), "name": fdr.bus.name.to_numpy(), "v": v_real}
    )
    return v_df


def get_power_flows(model: LinDistModelDR, result: OptimizeResult) -> pd.DataFrame:
    """
    Active and reactive power flows of each line, in bus order. The root has no
    inbound line and its flows are 0.
    """
    fdr = model.feeder
    lines = fdr.line_idx
    fp = np.zeros(fdr.nb)
    fq = np.zeros(fdr.nb)
    fp[lines] = _value(result.x.get("fp"), fdr.nb)[lines]
    fq[lines] = _value(result.x.get("fq"), fdr.nb)[lines]
    fb = np.full(fdr.nb, -1)
    fb[lines] = fdr.bus.id.to_numpy()[fdr.ancestor[lines]]
    s_df = pd.DataFrame(
        {"fb": fb, "tb": fdr.bus.id.to_numpy(), "fp": fp, "fq": fq}
    )
    return s_df


def get_dispatch_results(model: LinDistModelDR, result: OptimizeResult) -> DispatchResult:
    """
    Per-bus result table of a solved dispatch model.

    The marginal price is λ = (x_opt - β0 - μ) / β1 whether x_opt was optimized or
    given. ``dr_cost`` is the linearized cost of x_opt when it was optimized and the
    quadratic cost otherwise. Values with magnitude below 1e-10 are set to 0.

    Parameters
    ----------
    model : LinDistModelDR
    result : OptimizeResult from cvxpy_solve

    Returns
    -------
    DispatchResult
    """
    fdr = model.feeder
    n = fdr.nb
    mu = model.uncertainty.mu
    x_opt = _value(model.get_x_opt(), n)
    if model.options.optimize_dr:
        dr_cost = piecewise_cost(model.linearization, x_opt)
    else:
        dr_cost = model.cost_model.cost(x_opt, mu)
    objective = np.nan if result.fun is None else float(result.fun)
    flows = get_power_flows(model, result)
    table = pd.DataFrame(
        {
            "bus": fdr.bus.id.to_numpy(),
            "name": fdr.bus.name.to_numpy(),
            "d_p": fdr.d_p,
            "gp": _value(result.x.get("gp"), n),
            "gq": _value(result.x.get("gq"), n),
            "alpha": _value(model.get_alpha(), n),
            "x_opt": x_opt,
            "mp": _value(result.duals.get("balance_p"), n),
            "mq": _value(result.duals.get("balance_q"), n),
            "lambda": model.cost_model.marginal_price(x_opt, mu),
            "dr_cost": dr_cost,
            "v_real": get_voltages(model, result).v.to_numpy(),
            "objective": np.full(n, objective),
            "fp": flows.fp.to_numpy(),
            "fq": flows.fq.to_numpy(),
        },
        columns=RESULT_COLUMNS,
    )
    # get rid of numerical noise
    numeric = [c for c in RESULT_COLUMNS if c not in ("bus", "name")]
    for col in numeric:
        table[col] = clean_noise(table[col].to_numpy(dtype=float))
    return DispatchResult(
        table=table,
        status=result.status,
        success=bool(result.success),
        objective=objective,
        runtime=float(result.runtime),
        options=model.options,
    )
