from __future__ import annotations

import pandas as pd
import pytest
import torch

from torchpairsum.common.io import QuantityTable
from torchpairsum.model.bondcalculator import BondCounter
from torchpairsum.model.debye import DebyeSum
from torchpairsum.model.rdf import RDFCalculator


def test_rdf_table_csv(tmp_path, ni_structure):
    rdf = RDFCalculator(rmax=4.0, rstep=0.05)
    rdf.eval(ni_structure)
    table = QuantityTable.from_quantity(rdf)
    assert (table.grid_name, table.value_name) == ("r", "R")
    path = tmp_path / "rdf.csv"
    table.to_csv(path)
    df = pd.read_csv(path)
    assert list(df.columns) == ["r", "R"]
    loaded = QuantityTable.from_csv(path, grid_name="r", value_name="R")
    assert torch.allclose(loaded.grid, table.grid)
    assert torch.allclose(loaded.value, table.value)


def test_debye_table_uses_q_grid(cluster):
    ds = DebyeSum(qmax=5.0, qstep=0.5)
    ds.eval(cluster)
    table = QuantityTable.from_quantity(ds)
    assert table.grid_name == "Q"
    assert torch.allclose(table.value, ds.get_f())


def test_counter_table_and_stride(tmp_path, ni_structure):
    bc = BondCounter(rmax=3.0)
    bc.eval(ni_structure)
    table = QuantityTable.from_quantity(bc)
    assert table.grid_name == "index"
    assert table.value.tolist() == [48.0]
    path = tmp_path / "rows.csv"
    QuantityTable(torch.arange(10.0), torch.arange(10.0) ** 2).to_csv(path)
    strided = QuantityTable.from_csv(path, stride=3)
    assert strided.grid.tolist() == [0.0, 3.0, 6.0, 9.0]
    assert strided.value.tolist() == [0.0, 9.0, 36.0, 81.0]


def test_missing_column(tmp_path):
    path = tmp_path / "bad.csv"
    pd.DataFrame({"Q": [0.0, 1.0], "F": [1.0, 2.0]}).to_csv(path, index=False)
    with pytest.raises(ValueError):
        QuantityTable.from_csv(path)


def test_shape_mismatch():
    with pytest.raises(ValueError):
        QuantityTable(torch.zeros(3), torch.zeros(4))
