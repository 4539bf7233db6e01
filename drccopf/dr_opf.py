"""
This module contains high-level helper functions for creating and running dispatch
models and checking them against observed demand response.
"""

import json
from dataclasses import fields
from pathlib import Path

import numpy as np

from drccopf.config import DispatchOptions
from drccopf.feeder import Feeder
from drccopf.lindist_dr import LinDistModelDR
from drccopf.opf_solver import cvxpy_solve
from drccopf.results import DispatchResult, get_dispatch_results
from drccopf.settlement import SettlementOutcome, run_settlement
from drccopf.uncertainty import DRCostModel, UncertaintyModel

OPTION_NAMES = {f.name for f in fields(DispatchOptions)}


def _handle_options(options: DispatchOptions = None, **kwargs) -> DispatchOptions:
    if options is None:
        return DispatchOptions.from_dict(kwargs)
    if not isinstance(options, DispatchOptions):
        raise TypeError("options must be a DispatchOptions object or None.")
    if kwargs:
        return options.replace(**kwargs)
    return options


def create_model(
    feeder: Feeder,
    cost_model: DRCostModel,
    uncertainty: UncertaintyModel,
    non_dr_buses,
    options: DispatchOptions = None,
    **kwargs,
) -> LinDistModelDR:
    """
    Create the dispatch model.
    Parameters
    ----------
    feeder : Feeder
    cost_model : DRCostModel
    uncertainty : UncertaintyModel
    non_dr_buses : iterable of int
        Buses (0-based) excluded from demand response. Required, may be empty.
    options : DispatchOptions, optional
    kwargs :
        Option overrides, e.g. mode="predefined_dr", robust=False.
    Returns
    -------
    model: LinDistModelDR
    """
    options = _handle_options(options, **kwargs)
    return LinDistModelDR(feeder, cost_model, uncertainty, non_dr_buses, options)


def run_demand_response_opf(
    feeder: Feeder,
    cost_model: DRCostModel,
    uncertainty: UncertaintyModel,
    non_dr_buses,
    options: DispatchOptions = None,
    **kwargs,
) -> DispatchResult:
    """
    Build and solve the dispatch problem for one time step.

    Parameters
    ----------
    feeder : Feeder
    cost_model : DRCostModel
    uncertainty : UncertaintyModel
    non_dr_buses : iterable of int
        Buses (0-based) excluded from demand response. Required, may be empty.
    options : DispatchOptions, optional
    kwargs :
        Option overrides, e.g. mode="predefined_dr", robust=False.

    Returns
    -------
    result: DispatchResult
        Per-bus table, solver status and solve time. A failed solve is reported through
        the status; it does not raise.
    """
    model = create_model(
        feeder, cost_model, uncertainty, non_dr_buses, options=options, **kwargs
    )
    result = cvxpy_solve(model)
    return get_dispatch_results(model, result)


class DROPFCase(object):
    """
    Use this class to create a demand response dispatch case, run it, check it against
    observed demand response and save the results.
    Parameters
    ----------
    config: str or dict
        Path to JSON config or dictionary with the scalar parameters of the case.
        The data frames are always passed as keyword arguments.
    branch_data : pd.DataFrame
        DataFrame containing branch data (fb, tb, r, x, s_max)
    bus_data : pd.DataFrame
        DataFrame containing bus data (id, bus_type, d_p, d_q, v_min, v_max)
    gen_data : pd.DataFrame
        DataFrame containing generator data (id, g_p_max, g_q_max, cost)
    non_dr_buses: list of int
        Required. Buses (0-based) excluded from demand response.
    dr_price: Number
        (default 100) Demand response price, gives beta1 = 1/dr_price and beta0 = 0.
        Ignored if beta1 is provided.
    beta1, beta0: array
        Demand response cost coefficients.
    relative_std: Number
        (default 0.1) Standard deviation of the demand response relative to the load.
    max_correlation: Number
        (default 0) Correlation between buses.
    eta_v, eta_g: Number
        (default 0.1) Risk tolerance of the voltage and generation limits.
    output_dir: str or pathlib.Path
        (default: "output") Directory to save results.
    save_results: bool
        (default False) If true, saves result data to CSVs in output_dir
    save_inputs: bool
        (default False) If true, saves the model CSVs and the config.
    Any DispatchOptions field (mode, robust, enable_voltage, ...) is also accepted.
    """

    def __init__(self, **kwargs):
        config = kwargs.pop("config", None)
        if config is not None:
            if isinstance(config, (str, Path)):
                config = Path(config)
                if not config.suffix.lower() == ".json":
                    raise ValueError("config file must be a JSON formatted file.")
                with open(config) as f:
                    config = json.load(f)
            if not isinstance(config, dict):
                raise ValueError(
                    "config must be a dictionary or a path to a JSON formatted file."
                )
            kwargs = {**config, **kwargs}

        self.branch_data = kwargs.pop("branch_data", None)
        self.bus_data = kwargs.pop("bus_data", None)
        self.gen_data = kwargs.pop("gen_data", None)
        if "non_dr_buses" not in kwargs:
            raise ValueError("non_dr_buses must be provided (use an empty list for none).")
        self.non_dr_buses = [int(b) for b in kwargs.pop("non_dr_buses")]
        self.dr_price = kwargs.pop("dr_price", 100)
        self.beta1 = kwargs.pop("beta1", None)
        self.beta0 = kwargs.pop("beta0", 0.0)
        self.relative_std = kwargs.pop("relative_std", 0.1)
        self.max_correlation = kwargs.pop("max_correlation", 0.0)
        self.eta_v = kwargs.pop("eta_v", 0.1)
        self.eta_g = kwargs.pop("eta_g", 0.1)
        self.output_dir = Path(kwargs.pop("output_dir", "output"))
        self.save_results = kwargs.pop("save_results", False)
        self.save_inputs = kwargs.pop("save_inputs", False)
        unknown = set(kwargs) - OPTION_NAMES
        if unknown:
            raise ValueError(f"Unknown parameters: {', '.join(sorted(unknown))}.")
        self.options = DispatchOptions.from_dict(kwargs)

        self.feeder = Feeder(self.branch_data, self.bus_data, self.gen_data)
        if self.beta1 is None:
            self.cost_model = DRCostModel.from_price(self.feeder.nb, self.dr_price)
        else:
            self.cost_model = DRCostModel(beta1=self.beta1, beta0=self.beta0)
        self.uncertainty = UncertaintyModel.from_relative_std(
            self.feeder,
            self.relative_std,
            eta_v=self.eta_v,
            eta_g=self.eta_g,
            max_correlation=self.max_correlation,
        )

        self.model = None
        self.dispatch = None
        self.outcome = None

    @property
    def config(self) -> dict:
        config = {
            "non_dr_buses": self.non_dr_buses,
            "dr_price": self.dr_price,
            "beta0": np.asarray(self.beta0, dtype=float).tolist(),
            "relative_std": self.relative_std,
            "max_correlation": self.max_correlation,
            "eta_v": self.eta_v,
            "eta_g": self.eta_g,
        }
        if self.beta1 is not None:
            config["beta1"] = np.asarray(self.beta1, dtype=float).tolist()
        config.update(self.options.to_dict())
        return config

    def run(self) -> DispatchResult:
        """
        Run the dispatch optimization and save the results.
        Returns
        -------
        dispatch: DispatchResult
        """
        self.model = create_model(
            self.feeder,
            self.cost_model,
            self.uncertainty,
            self.non_dr_buses,
            options=self.options,
        )
        result = cvxpy_solve(self.model)
        self.dispatch = get_dispatch_results(self.model, result)

        if self.save_inputs:
            case_data_dir = self.output_dir / "case_data"
            case_data_dir.mkdir(parents=True, exist_ok=True)
            with open(case_data_dir / "config.json", "w") as f:
                json.dump(self.config, f, ensure_ascii=False, indent=4)
            self.feeder.branch_data.to_csv(case_data_dir / "branch_data.csv", index=False)
            self.feeder.bus_data.to_csv(case_data_dir / "bus_data.csv", index=False)
            self.feeder.gen_data.to_csv(case_data_dir / "gen_data.csv", index=False)
        if self.save_results:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self.dispatch.table.to_csv(self.output_dir / "dispatch.csv", index=False)
        return self.dispatch

    def settle(self, x_observed) -> SettlementOutcome:
        """
        Check the last dispatch against the observed demand response.
        Returns
        -------
        outcome: SettlementOutcome
        """
        if self.dispatch is None:
            raise ValueError("Run the dispatch before settling it.")
        self.outcome = run_settlement(self.feeder, self.dispatch, x_observed)
        if self.save_results:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            self.outcome.table.to_csv(self.output_dir / "settlement.csv", index=False)
        return self.outcome
