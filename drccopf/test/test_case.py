import json
import tempfile
import unittest
from pathlib import Path

import numpy as np

import drccopf as dro
from drccopf.test.cases import three_bus_data


class TestDROPFCase(unittest.TestCase):
    def test_run_and_settle(self):
        branch_data, bus_data, gen_data = three_bus_data()
        with tempfile.TemporaryDirectory() as tmp:
            case = dro.DROPFCase(
                config={"robust": False, "non_dr_buses": [2], "dr_price": 100},
                branch_data=branch_data,
                bus_data=bus_data,
                gen_data=gen_data,
                output_dir=tmp,
                save_results=True,
                save_inputs=True,
            )
            dispatch = case.run()
            self.assertTrue(dispatch.success)
            assert np.allclose(dispatch.column("x_opt"), [0, 0.35, 0], atol=1e-6)
            outcome = case.settle(dispatch.column("x_opt"))
            self.assertIs(case.outcome, outcome)
            self.assertFalse(outcome.violations)
            for name in ["dispatch.csv", "settlement.csv"]:
                self.assertTrue((Path(tmp) / name).exists())
            for name in ["config.json", "branch_data.csv", "bus_data.csv", "gen_data.csv"]:
                self.assertTrue((Path(tmp) / "case_data" / name).exists())
            with open(Path(tmp) / "case_data" / "config.json") as f:
                config = json.load(f)
        self.assertEqual(config["non_dr_buses"], [2])
        self.assertFalse(config["robust"])
        self.assertEqual(config["mode"], "optimize_dr")

    def test_config_file(self):
        branch_data, bus_data, gen_data = three_bus_data()
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            with open(path, "w") as f:
                json.dump(
                    {
                        "mode": "predefined_dr",
                        "robust": False,
                        "non_dr_buses": [],
                        "beta1": [1.0, 1.0, 1.0],
                        "tariff": 25.0,
                    },
                    f,
                )
            case = dro.DROPFCase(
                config=path,
                branch_data=branch_data,
                bus_data=bus_data,
                gen_data=gen_data,
            )
        self.assertEqual(case.options.mode, dro.PREDEFINED_DR)
        self.assertEqual(case.options.tariff, 25.0)
        assert np.allclose(case.cost_model.beta1, 1.0)
        dispatch = case.run()
        self.assertAlmostEqual(dispatch.column("gp")[0], 0.9, places=6)

    def test_invalid(self):
        branch_data, bus_data, gen_data = three_bus_data()
        data = dict(branch_data=branch_data, bus_data=bus_data, gen_data=gen_data)
        with self.assertRaises(ValueError):
            dro.DROPFCase(**data)
        with self.assertRaises(ValueError):
            dro.DROPFCase(non_dr_buses=[], unknown_parameter=1, **data)
        with self.assertRaises(ValueError):
            dro.DROPFCase(config="config.csv", **data)
        with self.assertRaises(ValueError):
            dro.DROPFCase(non_dr_buses=[], **data).settle(np.zeros(3))


if __name__ == "__main__":
    unittest.main()
