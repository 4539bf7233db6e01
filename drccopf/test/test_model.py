import json
import unittest

import numpy as np

from drccopf.config import DispatchOptions
from drccopf.dr_opf import create_model
from drccopf.lindist_dr import LinDistModelDR
from drccopf.test.cases import five_bus, three_bus
from drccopf.uncertainty import DRCostModel, UncertaintyModel


def three_bus_inputs():
    fdr = three_bus()
    cost_model = DRCostModel.from_price(fdr.nb, 100)
    uncertainty = UncertaintyModel.from_relative_std(fdr, 0.05)
    return fdr, cost_model, uncertainty


class TestModelAssembly(unittest.TestCase):
    def test_deterministic_families(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        m = create_model(fdr, cost_model, uncertainty, [2], robust=False)
        self.assertEqual(m.chance_constraints, {})
        for family in [
            "balance_p",
            "balance_q",
            "voltage_drop",
            "root",
            "no_generation",
            "dr_limits",
            "non_dr",
            "dr_split",
            "voltage_max",
            "voltage_min",
            "gen_p_max",
            "gen_p_min",
            "gen_q_max",
            "gen_q_min",
            "flow_limit",
        ]:
            self.assertIn(family, m.constraints)
        self.assertNotIn("alpha", m.constraints)
        self.assertEqual(len(m.constraints["voltage_max"]), 1)
        # deterministic mode uses capacity shares
        assert np.allclose(m.get_alpha(), [1, 0, 0])

    def test_robust_families(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        m = create_model(fdr, cost_model, uncertainty, [])
        self.assertTrue(m.alpha_is_variable)
        self.assertIn("alpha", m.variables)
        self.assertIn("alpha", m.constraints)
        self.assertEqual(len(m.chance_constraints["voltage_max"]), 3)
        self.assertEqual(len(m.chance_constraints["voltage_min"]), 3)
        self.assertEqual(len(m.chance_constraints["gen_p_max"]), 1)
        self.assertEqual(len(m.chance_constraints["gen_q_min"]), 1)
        self.assertEqual(len(m.constraints["voltage_max"]), 9)
        self.assertEqual(m.constraints["non_dr"], [])

    def test_switches(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        m = create_model(
            fdr,
            cost_model,
            uncertainty,
            [],
            enable_voltage=False,
            enable_generation=False,
            enable_flow=False,
        )
        self.assertNotIn("voltage_max", m.constraints)
        self.assertNotIn("flow_limit", m.constraints)
        # box limits on generation stay
        self.assertIn("gen_p_max", m.constraints)
        self.assertNotIn("gen_p_max", m.chance_constraints)

    def test_fixed_alpha(self):
        fdr = five_bus()
        cost_model = DRCostModel.from_price(fdr.nb, 100)
        uncertainty = UncertaintyModel.from_relative_std(fdr, 0.05)
        alpha = [0.5, 0, 0, 0.5, 0]
        m = create_model(fdr, cost_model, uncertainty, [], alpha=alpha)
        self.assertFalse(m.alpha_is_variable)
        self.assertNotIn("alpha", m.variables)
        assert np.allclose(m.get_alpha(), alpha)
        self.assertEqual(len(m.chance_constraints["gen_p_max"]), 2)

    def test_predefined_dr(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        m = create_model(
            fdr, cost_model, uncertainty, [], mode="predefined_dr", x_in=[0, 0.1, 0.2]
        )
        self.assertNotIn("x_opt", m.variables)
        self.assertNotIn("dr_split", m.constraints)
        self.assertNotIn("dr_cost", m.expressions)
        assert np.allclose(m.get_x_opt(), [0, 0.1, 0.2])

    def test_predefined_dr_wrong_size(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        with self.assertLogs("drccopf.lindist_dr", level="WARNING"):
            m = create_model(
                fdr, cost_model, uncertainty, [], mode="predefined_dr", x_in=[0.1]
            )
        assert np.allclose(m.get_x_opt(), 0)

    def test_predefined_dr_at_non_dr_bus(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        with self.assertLogs("drccopf.lindist_dr", level="WARNING") as logs:
            m = create_model(
                fdr, cost_model, uncertainty, [2], mode="predefined_dr", x_in=[0, 0, 0.2]
            )
        self.assertTrue(
            any("excluded from demand response: 2." in line for line in logs.output)
        )
        # the given reduction is applied as is
        assert np.allclose(m.get_x_opt(), [0, 0, 0.2])

    def test_logs_description(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        with self.assertLogs("drccopf.lindist_dr", level="INFO") as logs:
            create_model(fdr, cost_model, uncertainty, [])
        self.assertIn(
            "robust chance constrained OPF with optimal demand response "
            "and optimal participation factor",
            logs.output[0],
        )

    def test_describe(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        m = create_model(fdr, cost_model, uncertainty, [2], n_splits=4)
        summary = m.describe()
        json.dumps(summary)
        self.assertEqual(summary["n_buses"], 3)
        self.assertEqual(summary["non_dr_buses"], [2])
        self.assertEqual(summary["variables"]["x_split"], [4, 3])
        self.assertEqual(summary["chance_constraints"]["voltage_max"], 3)
        self.assertTrue(summary["optimize_alpha"])

    def test_invalid_inputs(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        with self.assertRaises(ValueError):
            create_model(fdr, cost_model, uncertainty, [], mode="unknown")
        with self.assertRaises(ValueError):
            create_model(fdr, cost_model, uncertainty, [5])
        with self.assertRaises(ValueError):
            create_model(fdr, DRCostModel.from_price(2, 100), uncertainty, [])
        with self.assertRaises(ValueError):
            create_model(fdr, cost_model, UncertaintyModel(np.zeros(2), np.eye(2)), [])
        with self.assertRaises(TypeError):
            create_model(fdr, cost_model, uncertainty, [], options={"robust": False})

    def test_options_object(self):
        fdr, cost_model, uncertainty = three_bus_inputs()
        opt = DispatchOptions(robust=False, tariff=20.0)
        m = LinDistModelDR(fdr, cost_model, uncertainty, [], opt)
        self.assertIs(m.options, opt)
        m = create_model(fdr, cost_model, uncertainty, [], options=opt, tariff=10.0)
        self.assertEqual(m.options.tariff, 10.0)
        self.assertFalse(m.options.robust)


if __name__ == "__main__":
    unittest.main()
