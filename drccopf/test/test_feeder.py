import unittest

import numpy as np
import pandas as pd

from drccopf.feeder import Feeder
from drccopf.lindist_dr import default_participation
from drccopf.test.cases import five_bus, five_bus_data, three_bus, three_bus_data


class TestFeeder(unittest.TestCase):
    def test_three_bus_topology(self):
        fdr = three_bus()
        self.assertEqual(fdr.nb, 3)
        self.assertEqual(fdr.root_bus, 0)
        assert np.array_equal(fdr.ancestor, [-1, 0, 1])
        assert np.array_equal(fdr.line_idx, [1, 2])
        assert np.array_equal(fdr.A, [[0, 1, 1], [0, 0, 1]])
        assert np.allclose(np.diag(fdr.R), [0.01, 0.01])
        assert np.allclose(np.diag(fdr.X), [0.02, 0.02])
        self.assertEqual(fdr.path_to_root(2), [2, 1, 0])
        assert np.allclose(fdr.tanphi, [0, 0.2, 0.5])

    def test_generator_data(self):
        fdr = three_bus()
        assert np.array_equal(fdr.gen_buses, [0])
        assert np.allclose(fdr.g_p_max, [2, 0, 0])
        assert np.allclose(fdr.gen_cost, [100, 0, 0])

    def test_unsorted_branches(self):
        fdr = five_bus()
        self.assertEqual(fdr.nb, 5)
        assert np.array_equal(fdr.ancestor, [-1, 0, 1, 0, 3])
        # each line is stored at the bus it feeds
        assert np.allclose(fdr.r, [0, 0.02, 0.03, 0.01, 0.04])
        assert np.allclose(fdr.x, [0, 0.03, 0.04, 0.02, 0.05])
        expected_a = [
            [0, 1, 1, 0, 0],
            [0, 0, 1, 0, 0],
            [0, 0, 0, 1, 1],
            [0, 0, 0, 0, 1],
        ]
        assert np.array_equal(fdr.A, expected_a)
        self.assertEqual(list(fdr.children[0]), [1, 3])
        self.assertEqual(fdr.path_to_root(4), [4, 3, 0])

    def test_default_participation(self):
        assert np.allclose(default_participation(five_bus()), [0.75, 0, 0, 0.25, 0])
        branch_data, bus_data, gen_data = three_bus_data()
        gen_data.g_p_max = 0.0
        fdr = Feeder(branch_data, bus_data, gen_data)
        assert np.allclose(default_participation(fdr), [1, 0, 0])

    def test_no_generators(self):
        branch_data, bus_data, _ = three_bus_data()
        fdr = Feeder(branch_data, bus_data)
        self.assertEqual(len(fdr.gen_buses), 0)
        assert np.allclose(default_participation(fdr), 0)

    def test_loop_raises(self):
        branch_data, bus_data, gen_data = three_bus_data()
        loop = pd.DataFrame(
            {"fb": [1], "tb": [3], "r": [0.01], "x": [0.01], "s_max": [1.0]}
        )
        branch_data = pd.concat([branch_data, loop], ignore_index=True)
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data)

    def test_disconnected_raises(self):
        branch_data, bus_data, gen_data = three_bus_data()
        branch_data["status"] = ["CLOSED", "OPEN"]
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data)

    def test_swing_bus_count(self):
        branch_data, bus_data, gen_data = three_bus_data()
        bus_data.bus_type = "PQ"
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data)
        bus_data.bus_type = ["SWING", "SWING", "PQ"]
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data)

    def test_bad_references(self):
        branch_data, bus_data, gen_data = three_bus_data()
        branch_data.loc[1, "tb"] = 7
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data)
        branch_data, bus_data, gen_data = three_bus_data()
        gen_data.id = [9]
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data)

    def test_missing_columns(self):
        branch_data, bus_data, gen_data = three_bus_data()
        with self.assertRaises(ValueError):
            Feeder(branch_data.drop(columns=["s_max"]), bus_data, gen_data)
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data.drop(columns=["v_min"]), gen_data)
        with self.assertRaises(ValueError):
            Feeder(branch_data, bus_data, gen_data.drop(columns=["cost"]))
        with self.assertRaises(ValueError):
            Feeder(None, bus_data, gen_data)


if __name__ == "__main__":
    unittest.main()
