"""
common/utils.py – Device selection, numeric tolerances and argument checks.
"""
import os
import sys
from functools import lru_cache
from pathlib import Path

import torch

DOUBLE_EPS = sys.float_info.epsilon
SQRT_DOUBLE_EPS = DOUBLE_EPS ** 0.5

# default dtype of accumulated values
VALUE_DTYPE = torch.float64

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "default.yaml"

# Set environment variable PROJECT_ROOT so that OmegaConf interpolations can access it.
os.environ.setdefault("PROJECT_ROOT", str(PROJECT_ROOT))


@lru_cache
def get_device() -> torch.device:
    """
    Some backends such as MPS have no float64 support, so fall back to CPU.
    """
    if torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


def resolve_device(accelerator: str | torch.device) -> torch.device:
    """Map an accelerator setting to a device, ``"auto"`` picks the best one."""
    if isinstance(accelerator, str) and accelerator == "auto":
        return get_device()
    return torch.device(accelerator)


def eps_eq(x: float, y: float, eps: float = SQRT_DOUBLE_EPS) -> bool:
    return abs(x - y) <= eps


def ensure_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}.")


def ensure_epsilon_positive(name: str, value: float) -> None:
    if value <= SQRT_DOUBLE_EPS:
        raise ValueError(f"{name} must be positive, got {value}.")
