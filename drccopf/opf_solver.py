import logging
from time import perf_counter

import cvxpy as cp
from scipy.optimize import OptimizeResult

from drccopf.lindist_dr import LinDistModelDR

logger = logging.getLogger(__name__)

SOLVER_ERROR = "solver_error"


def cvxpy_solve(model: LinDistModelDR, **kwargs) -> OptimizeResult:
    """
    Solve the assembled conic program using cvxpy.
    Parameters
    ----------
    model : LinDistModelDR
    kwargs :
        solver: str
            Solver to use with CVXPY. Defaults to model.options.solver.
        verbose: bool
            (default False) Show solver output.

    Returns
    -------
    result: scipy.optimize.OptimizeResult
        fun : optimal objective value (None if not solved)
        success : True if the status is "optimal"
        status : cvxpy status string or "solver_error"
        message : same as status
        x : dict of primal values by variable name (None where unavailable)
        duals : dict with the duals of the balance_p and balance_q constraints
        nit : solver iterations (None if unavailable)
        runtime : wall time in seconds
    """
    m = model
    tic = perf_counter()
    solver = kwargs.get("solver", m.options.solver)
    verbose = kwargs.get("verbose", False)
    prob = m.problem
    try:
        prob.solve(verbose=verbose, solver=solver)
        status = prob.status
    except cp.error.SolverError as e:
        logger.warning("Solver %s failed: %s", solver, e)
        status = SOLVER_ERROR
    runtime = perf_counter() - tic

    nit = None
    if prob.solver_stats is not None:
        nit = prob.solver_stats.num_iters
    x_res = {name: var.value for name, var in m.variables.items()}
    duals = {
        name: m.constraints[name][0].dual_value for name in ["balance_p", "balance_q"]
    }
    if status == cp.OPTIMAL:
        logger.debug("Solved in %.3f s", runtime)
    else:
        logger.warning("Dispatch problem was not solved. Status: %s", status)
    result = OptimizeResult(
        fun=prob.value if status != SOLVER_ERROR else None,
        success=(status == cp.OPTIMAL),
        status=status,
        message=status,
        x=x_res,
        duals=duals,
        nit=nit,
        runtime=runtime,
    )
    return result
