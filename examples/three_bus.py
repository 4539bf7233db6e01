import numpy as np
import pandas as pd

import drccopf as dro

branch_data = pd.DataFrame(
    {
        "fb": [1, 2],
        "tb": [2, 3],
        "r": [0.01, 0.01],
        "x": [0.02, 0.02],
        "s_max": [5.0, 5.0],
    }
)
bus_data = pd.DataFrame(
    {
        "id": [1, 2, 3],
        "name": ["sub", "n2", "n3"],
        "bus_type": ["SWING", "PQ", "PQ"],
        "d_p": [0.0, 0.5, 0.4],
        "d_q": [0.0, 0.1, 0.2],
        "v_min": [0.95, 0.95, 0.95],
        "v_max": [1.05, 1.05, 1.05],
    }
)
gen_data = pd.DataFrame({"id": [1], "g_p_max": [2.0], "g_q_max": [2.0], "cost": [100.0]})

case = dro.DROPFCase(
    config={
        "non_dr_buses": [2],
        "dr_price": 100,
        "relative_std": 0.1,
        "eta_v": 0.1,
        "eta_g": 0.1,
        "tariff": 30,
    },
    branch_data=branch_data,
    bus_data=bus_data,
    gen_data=gen_data,
    output_dir="three_bus_output",
    save_results=True,
)
dispatch = case.run()
print(dispatch.status, dispatch.objective)
print(dispatch.table)

# sample a realization of the demand response
rng = np.random.default_rng(0)
omega = rng.multivariate_normal(case.uncertainty.mu, case.uncertainty.sigma)
outcome = case.settle(dispatch.column("x_opt") + omega)
print(outcome.table)
print(f"Revenue: {outcome.total_revenue:.3f}, violations: {outcome.violations}")
