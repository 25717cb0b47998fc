from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd
import torch

from torchpairsum.common.utils import VALUE_DTYPE


@dataclass
class QuantityTable:
    """Evaluated pair quantity on its grid, stored as a two column CSV."""
    grid: torch.Tensor
    value: torch.Tensor
    grid_name: str = "r"
    value_name: str = "value"

    def __post_init__(self):
        if self.grid.shape != self.value.shape:
            raise ValueError(
                f"Grid and value must have the same shape, got "
                f"{tuple(self.grid.shape)} and {tuple(self.value.shape)}."
            )

    @classmethod
    def from_quantity(cls, pq, value_name: str | None = None) -> "QuantityTable":
        """Tabulate the current result of a pair quantity."""
        if hasattr(pq, "get_rgrid"):
            return cls(pq.get_rgrid().cpu(), pq.get_rdf().cpu(), "r", value_name or "R")
        if hasattr(pq, "get_qgrid"):
            return cls(pq.get_qgrid().cpu(), pq.get_f().cpu(), "Q", value_name or "F")
        value = pq.value.cpu()
        return cls(torch.arange(len(value), dtype=value.dtype), value, "index", value_name or "value")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            self.grid_name: self.grid.detach().cpu().numpy(),
            self.value_name: self.value.detach().cpu().numpy(),
        })

    def to_csv(self, path: str | Path) -> None:
        self.to_frame().to_csv(path, index=False)

    @classmethod
    def from_csv(
        cls,
        path: str | Path,
        *,
        grid_name: str = "r",
        value_name: str = "value",
        device: str | torch.device = "cpu",
        stride: int = 1,
    ) -> "QuantityTable":
        df = pd.read_csv(path)
        for col in (grid_name, value_name):
            if col not in df.columns:
                raise ValueError(f"Column {col!r} not found in {path}.")
        device = torch.device(device)
        grid = torch.tensor(df[grid_name].to_numpy(dtype="float64")[::stride], dtype=VALUE_DTYPE, device=device)
        value = torch.tensor(df[value_name].to_numpy(dtype="float64")[::stride], dtype=VALUE_DTYPE, device=device)
        return cls(grid, value, grid_name, value_name)

    def to(self, new_device: str | torch.device) -> "QuantityTable":
        new_device = torch.device(new_device)
        return QuantityTable(self.grid.to(new_device), self.value.to(new_device),
                             self.grid_name, self.value_name)
