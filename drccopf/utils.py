import numpy as np
import pandas as pd

# values below this magnitude are treated as solver noise
NOISE_TOL = 1e-10


def handle_gen_input(gen_data: pd.DataFrame) -> pd.DataFrame:
    if gen_data is None:
        return pd.DataFrame(columns=["id", "name", "g_p_max", "g_q_max", "cost"])
    for col in ["id", "g_p_max", "g_q_max", "cost"]:
        if col not in gen_data.columns:
            raise ValueError(f"Generator data is missing the column '{col}'.")
    if gen_data.id.duplicated().any():
        raise ValueError("Only one generator per bus is supported.")
    gen = gen_data.sort_values(by="id", ignore_index=True)
    gen.index = gen.id.to_numpy(dtype=int) - 1
    return gen


def handle_branch_input(branch_data: pd.DataFrame) -> pd.DataFrame:
    if branch_data is None:
        raise ValueError("Branch data must be provided.")
    for col in ["fb", "tb", "r", "x", "s_max"]:
        if col not in branch_data.columns:
            raise ValueError(f"Branch data is missing the column '{col}'.")
    branch = branch_data.sort_values(by="tb", ignore_index=True)
    if "status" in branch.columns:
        branch = branch.loc[branch.status != "OPEN", :]
    return branch


def handle_bus_input(bus_data: pd.DataFrame) -> pd.DataFrame:
    if bus_data is None:
        raise ValueError("Bus data must be provided.")
    for col in ["id", "bus_type", "d_p", "d_q", "v_min", "v_max"]:
        if col not in bus_data.columns:
            raise ValueError(f"Bus data is missing the column '{col}'.")
    bus = bus_data.sort_values(by="id", ignore_index=True)
    bus.index = bus.id.to_numpy(dtype=int) - 1
    if "name" not in bus.columns:
        bus["name"] = bus.id.astype(str)
    if "tanphi" not in bus.columns:
        d_p = bus.d_p.to_numpy(dtype=float)
        d_q = bus.d_q.to_numpy(dtype=float)
        tanphi = np.zeros(len(bus))
        np.divide(d_q, d_p, out=tanphi, where=d_p != 0)
        bus["tanphi"] = tanphi
    return bus


def clean_noise(values, tol: float = NOISE_TOL):
    """
    Snap values with magnitude below `tol` to exactly zero.
    NaN values are left untouched.
    """
    values = np.array(values, dtype=float)
    values[np.abs(values) < tol] = 0.0
    return values


def as_vector(values, n: int, name: str) -> np.ndarray:
    """Broadcast a scalar or check a length-n sequence, returning a float array."""
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 0:
        return np.full(n, float(arr))
    arr = arr.flatten()
    if arr.shape[0] != n:
        raise ValueError(f"{name} must have {n} entries. Instead got {arr.shape[0]}.")
    return arr
