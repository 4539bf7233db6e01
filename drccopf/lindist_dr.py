import logging

import cvxpy as cp
import numpy as np
from scipy.sparse import csr_array

from drccopf.chance_constraints import (
    chance_constraint_family,
    generation_sensitivity,
    reactive_generation_sensitivity,
    voltage_sensitivity,
)
from drccopf.config import DispatchOptions
from drccopf.dr_cost import linearize_dr_cost
from drccopf.feeder import Feeder
from drccopf.uncertainty import DRCostModel, UncertaintyModel

logger = logging.getLogger(__name__)


def default_participation(feeder: Feeder) -> np.ndarray:
    """
    Participation factors proportional to the active power capacity of each generator.
    Equal shares if no generator has capacity.
    """
    alpha = np.zeros(feeder.nb)
    if len(feeder.gen_buses) == 0:
        return alpha
    capacity = feeder.g_p_max[feeder.gen_buses]
    if capacity.sum() > 0:
        alpha[feeder.gen_buses] = capacity / capacity.sum()
    else:
        alpha[feeder.gen_buses] = 1 / len(feeder.gen_buses)
    return alpha


class LinDistModelDR:
    """
    LinDistFlow dispatch model with demand response and (optionally) distributionally
    robust chance constraints.

    Parameters
    ----------
    feeder : Feeder
        Radial feeder topology, loads and limits.
    cost_model : DRCostModel
        Quadratic demand-response cost coefficients (beta1, beta0).
    uncertainty : UncertaintyModel
        Mean, covariance and second-moment matrix of the demand-response deviation
        and the risk tolerances eta_v and eta_g.
    non_dr_buses : iterable of int
        Buses (0-based) that do not take part in demand response. May be empty.
    options : DispatchOptions
        Model configuration. Defaults to DispatchOptions().

    Attributes
    ----------
    variables : dict
        Decision variables by name.
    constraints : dict
        Lists of constraints by family name, in the order they were added.
    chance_constraints : dict
        DRChanceConstraint objects of each robust constraint family.
    expressions : dict
        Objective terms: gen_cost, dr_cost, revenue.
    problem : cp.Problem
    """

    def __init__(
        self,
        feeder: Feeder,
        cost_model: DRCostModel,
        uncertainty: UncertaintyModel,
        non_dr_buses,
        options: DispatchOptions = None,
    ):
        if options is None:
            options = DispatchOptions()
        n = feeder.nb
        if cost_model.n != n:
            raise ValueError(f"cost_model must have {n} buses. Instead got {cost_model.n}.")
        if uncertainty.n != n:
            raise ValueError(
                f"uncertainty must have {n} buses. Instead got {uncertainty.n}."
            )
        non_dr_buses = np.unique(np.asarray(list(non_dr_buses), dtype=int))
        if any((non_dr_buses < 0) | (non_dr_buses >= n)):
            raise ValueError("non_dr_buses refers to a bus that does not exist.")

        self.feeder = feeder
        self.cost_model = cost_model
        self.uncertainty = uncertainty
        self.options = options
        self.non_dr_buses = non_dr_buses
        self.nb = n
        self.optimize_alpha = options.optimize_alpha(n)
        self.alpha_is_variable = options.robust and self.optimize_alpha

        self.variables = {}
        self.constraints = {}
        self.chance_constraints = {}
        self.expressions = {}
        self.linearization = linearize_dr_cost(
            cost_model.beta1,
            cost_model.beta0,
            uncertainty.mu,
            feeder.d_p,
            n_splits=options.n_splits,
        )
        logger.info("Running %s.", self.description)

        self._add_variables()
        self._add_power_flow()
        self._add_demand_response()
        self._add_participation()
        if options.enable_voltage:
            self._add_voltage_limits()
        self._add_generation_limits()
        if options.enable_flow:
            self._add_flow_limits()
        self.objective = self._objective()
        self.problem = cp.Problem(self.objective, self.constraint_list)

    @property
    def description(self) -> str:
        message = (
            "robust chance constrained OPF"
            if self.options.robust
            else "deterministic OPF"
        )
        message += (
            " with optimal demand response"
            if self.options.optimize_dr
            else " with predefined demand response"
        )
        if self.alpha_is_variable:
            message += " and optimal participation factor"
        elif self.optimize_alpha:
            message += " and capacity-share participation factor"
        else:
            message += " and predefined participation factor"
        return message

    @property
    def constraint_list(self) -> list:
        return [c for family in self.constraints.values() for c in family]

    def _add_variables(self):
        n = self.nb
        opt = self.options
        self.v = cp.Variable(n, nonneg=True, name="v")  # voltage squared
        self.fp = cp.Variable(n, name="fp")  # active power flow into bus
        self.fq = cp.Variable(n, name="fq")  # reactive power flow into bus
        self.gp = cp.Variable(n, name="gp")
        self.gq = cp.Variable(n, name="gq")
        self.variables.update(v=self.v, fp=self.fp, fq=self.fq, gp=self.gp, gq=self.gq)

        if opt.optimize_dr:
            self.x_opt = cp.Variable(n, nonneg=True, name="x_opt")
            self.x_split = cp.Variable((opt.n_splits, n), nonneg=True, name="x_split")
            self.variables.update(x_opt=self.x_opt, x_split=self.x_split)
        else:
            self.x_split = None
            if opt.x_in is not None and len(opt.x_in) == n:
                self.x_opt = np.array(opt.x_in, dtype=float)
            else:
                if opt.x_in is not None:
                    logger.warning(
                        "x_in has %d entries but the feeder has %d buses. Using zero demand response.",
                        len(opt.x_in),
                        n,
                    )
                self.x_opt = np.zeros(n)
            conflicts = self.non_dr_buses[self.x_opt[self.non_dr_buses] != 0]
            if len(conflicts) > 0:
                logger.warning(
                    "x_in is nonzero at buses excluded from demand response: %s.",
                    ", ".join(str(b) for b in conflicts),
                )

        if self.alpha_is_variable:
            self.alpha = cp.Variable(n, nonneg=True, name="alpha")
            self.variables["alpha"] = self.alpha
        elif self.optimize_alpha:
            self.alpha = default_participation(self.feeder)
        else:
            self.alpha = np.array(opt.alpha, dtype=float)

    def _add_power_flow(self):
        fdr = self.feeder
        n = self.nb
        parents = fdr.ancestor[fdr.line_idx]
        k = csr_array(
            (np.ones(len(fdr.line_idx)), (parents, fdr.line_idx)), shape=(n, n)
        )  # k[i, j] = 1 if j is a child of i
        # ~~~~~~~~~~ energy balance ~~~~~~~~~~
        self.constraints["balance_p"] = [
            fdr.d_p - self.x_opt - self.gp + k @ self.fp == self.fp
        ]
        self.constraints["balance_q"] = [
            fdr.d_q - cp.multiply(fdr.tanphi, self.x_opt) - self.gq + k @ self.fq
            == self.fq
        ]
        # ~~~~~~~~~~ voltage drop along each line ~~~~~~~~~~
        lines = fdr.line_idx
        self.constraints["voltage_drop"] = []
        if len(lines) > 0:
            self.constraints["voltage_drop"] = [
                self.v[lines]
                == self.v[parents]
                - 2
                * (
                    cp.multiply(fdr.r[lines], self.fp[lines])
                    + cp.multiply(fdr.x[lines], self.fq[lines])
                )
            ]
        # ~~~~~~~~~~ root boundary ~~~~~~~~~~
        root = fdr.root_bus
        self.constraints["root"] = [
            self.v[root] == self.options.v_root**2,
            self.fp[root] == 0,
            self.fq[root] == 0,
        ]
        non_gen = np.setdiff1d(np.arange(n), fdr.gen_buses)
        self.constraints["no_generation"] = []
        if len(non_gen) > 0:
            self.constraints["no_generation"] = [
                self.gp[non_gen] == 0,
                self.gq[non_gen] == 0,
            ]

    def _add_demand_response(self):
        if not self.options.optimize_dr:
            return
        lin = self.linearization
        self.constraints["dr_limits"] = [self.x_opt <= self.feeder.d_p]
        self.constraints["non_dr"] = []
        if len(self.non_dr_buses) > 0:
            self.constraints["non_dr"] = [self.x_opt[self.non_dr_buses] == 0]
        self.constraints["dr_split"] = [
            self.x_split <= np.tile(lin.split_width, (lin.n_splits, 1)),
            self.x_opt == cp.sum(self.x_split, axis=0),
        ]

    def _add_participation(self):
        if not self.alpha_is_variable:
            return
        non_gen = np.setdiff1d(np.arange(self.nb), self.feeder.gen_buses)
        self.constraints["alpha"] = [cp.sum(self.alpha) == 1]
        if len(non_gen) > 0:
            self.constraints["alpha"].append(self.alpha[non_gen] == 0)

    def _add_chance_family(self, family, buses, quantity, sensitivity, limits, eta, upper):
        ccs = chance_constraint_family(
            buses,
            quantity,
            sensitivity,
            limits,
            eta,
            self.uncertainty.omega,
            upper=upper,
            name=family,
        )
        self.chance_constraints[family] = ccs
        self.constraints[family] = [c for cc in ccs for c in cc.constraints]

    def _add_voltage_limits(self):
        fdr = self.feeder
        v_max = fdr.v_max**2
        v_min = fdr.v_min**2
        if not self.options.robust:
            self.constraints["voltage_max"] = [self.v <= v_max]
            self.constraints["voltage_min"] = [self.v >= v_min]
            return
        sens = voltage_sensitivity(fdr, self.alpha)
        buses = range(self.nb)
        eta = self.uncertainty.eta_v
        self._add_chance_family(
            "voltage_max", buses, self.v, lambda b: sens[b], v_max, eta, upper=True
        )
        self._add_chance_family(
            "voltage_min", buses, self.v, lambda b: sens[b], v_min, eta, upper=False
        )

    def _add_generation_limits(self):
        fdr = self.feeder
        gen = fdr.gen_buses
        if len(gen) == 0:
            return
        if not (self.options.robust and self.options.enable_generation):
            # Basic limits on generation are always kept, otherwise the problem is unbounded
            self.constraints["gen_p_max"] = [self.gp[gen] <= fdr.g_p_max[gen]]
            self.constraints["gen_p_min"] = [self.gp[gen] >= 0]
            self.constraints["gen_q_max"] = [self.gq[gen] <= fdr.g_q_max[gen]]
            self.constraints["gen_q_min"] = [self.gq[gen] >= -fdr.g_q_max[gen]]
            return
        n = self.nb
        eta = self.uncertainty.eta_g

        def p_sens(b):
            return generation_sensitivity(self.alpha[b], n)

        def q_sens(b):
            return reactive_generation_sensitivity(self.alpha[b], fdr.gamma)

        self._add_chance_family(
            "gen_p_max", gen, self.gp, p_sens, fdr.g_p_max, eta, upper=True
        )
        self._add_chance_family(
            "gen_p_min", gen, self.gp, p_sens, np.zeros(n), eta, upper=False
        )
        self._add_chance_family(
            "gen_q_max", gen, self.gq, q_sens, fdr.g_q_max, eta, upper=True
        )
        self._add_chance_family(
            "gen_q_min", gen, self.gq, q_sens, -fdr.g_q_max, eta, upper=False
        )

    def _add_flow_limits(self):
        lines = self.feeder.line_idx
        if len(lines) == 0:
            return
        flows = cp.vstack([self.fp[lines], self.fq[lines]])
        self.constraints["flow_limit"] = [
            cp.norm(flows, 2, axis=0) <= self.feeder.s_max[lines]
        ]

    def _objective(self) -> cp.Minimize:
        fdr = self.feeder
        lin = self.linearization
        self.expressions["gen_cost"] = fdr.gen_cost @ self.gp
        if not self.options.optimize_dr:
            return cp.Minimize(self.expressions["gen_cost"])
        # piecewise linear demand response cost
        self.expressions["dr_cost"] = cp.sum(lin.nlc) + cp.sum(
            cp.multiply(lin.marginal_costs, self.x_split)
        )
        self.expressions["revenue"] = self.options.tariff * cp.sum(
            fdr.d_p - self.x_opt - self.uncertainty.mu
        )
        return cp.Minimize(
            self.expressions["gen_cost"]
            + self.expressions["dr_cost"]
            - self.expressions["revenue"]
        )

    def get_alpha(self) -> np.ndarray:
        if self.alpha_is_variable:
            return self.alpha.value
        return self.alpha

    def get_x_opt(self) -> np.ndarray:
        if self.options.optimize_dr:
            return self.x_opt.value
        return self.x_opt

    def describe(self) -> dict:
        """
        Summary of the assembled problem that can be serialized to JSON.
        """
        return {
            "description": self.description,
            "n_buses": int(self.nb),
            "options": self.options.to_dict(),
            "optimize_alpha": bool(self.alpha_is_variable),
            "non_dr_buses": [int(b) for b in self.non_dr_buses],
            "variables": {
                name: [int(i) for i in var.shape] for name, var in self.variables.items()
            },
            "constraints": {
                name: len(family) for name, family in self.constraints.items()
            },
            "chance_constraints": {
                name: len(family) for name, family in self.chance_constraints.items()
            },
        }
