import pandas as pd

import drccopf as dro
from drccopf.test.cases import five_bus

fdr = five_bus()
cost_model = dro.DRCostModel.from_price(fdr.nb, 100)
uncertainty = dro.UncertaintyModel.from_relative_std(fdr, 0.1, max_correlation=0.2)

rows = []
for robust in [False, True]:
    for mode in [dro.PREDEFINED_DR, dro.OPTIMIZE_DR]:
        res = dro.run_demand_response_opf(
            fdr, cost_model, uncertainty, [], mode=mode, robust=robust
        )
        outcome = dro.run_settlement(fdr, res, res.column("x_opt"))
        rows.append(
            {
                "robust": robust,
                "mode": mode,
                "status": res.status,
                "objective": res.objective,
                "runtime": res.runtime,
                "revenue": outcome.total_revenue,
            }
        )
print(pd.DataFrame(rows))
