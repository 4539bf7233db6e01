# fmt: off
from drccopf.feeder import Feeder, SWING_BUS, PQ_BUS
from drccopf.uncertainty import UncertaintyModel, DRCostModel, second_moment_matrix
from drccopf.dr_cost import (
    DRCostLinearization,
    dr_cost,
    linearize_dr_cost,
    fill_segments,
    piecewise_cost,
)
from drccopf.chance_constraints import (
    DRChanceConstraint,
    upper_chance_constraint,
    lower_chance_constraint,
    chance_constraint_family,
    voltage_sensitivity,
    generation_sensitivity,
    reactive_generation_sensitivity,
)
from drccopf.config import DispatchOptions, OPTIMIZE_DR, PREDEFINED_DR
from drccopf.lindist_dr import LinDistModelDR, default_participation
from drccopf.opf_solver import cvxpy_solve
from drccopf.results import (
    DispatchResult,
    get_dispatch_results,
    get_voltages,
    get_power_flows,
)
from drccopf.settlement import SettlementOutcome, run_settlement
from drccopf.dr_opf import DROPFCase, create_model, run_demand_response_opf
# fmt: on
