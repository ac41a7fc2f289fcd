import numpy as np

def as_T(T) -> np.ndarray:
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got shape {T.shape}")
    return T

def Rt_to_T(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    T = np.eye(4)
    T[:3,:3] = R
    T[:3, 3] = np.asarray(t).reshape(3)
    return T

def inv_T(T: np.ndarray) -> np.ndarray:
    R = T[:3,:3]; t = T[:3,3]
    Ti = np.eye(4)
    Ti[:3,:3] = R.T
    Ti[:3, 3] = -R.T @ t
    return Ti

def transform_points(T: np.ndarray, X: np.ndarray) -> np.ndarray:
    """Apply T_a_b to (N,3) points expressed in b; returns points in a."""
    X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
    return X @ T[:3, :3].T + T[:3, 3]
