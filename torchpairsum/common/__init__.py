"""
TorchPairSum Common Module

Logical clock, configuration, tabular I/O and helper functions.
"""

from torchpairsum.common.ticker import EventTicker
from torchpairsum.common.utils import (
    PROJECT_ROOT,
    get_device,
    resolve_device,
)

__all__ = [
    "EventTicker",
    "PROJECT_ROOT",
    "get_device",
    "resolve_device",
]
