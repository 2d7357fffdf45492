"""
Efficiency lookup tables

Efficiencies enter the event weights through a single capability,
efficiency(x, y) -> float, with x usually the object pT (or the MET) and y
its pseudorapidity (0 for MET). Tables are whitespace separated text files,
one row per (x, y) cell:

    # x_lo  x_hi  y_lo  y_hi  eff  [err_up  err_down ...]
    25.0   30.0  -2.5   0.0   0.82  0.01  0.01

Columns after the fifth are ignored: the weights carry no efficiency
uncertainty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

from .exceptions import EfficiencyError


class EfficiencyProvider(Protocol):
    """Anything returning an efficiency in [0, 1] for (x, y)."""

    def efficiency(self, x: float, y: float) -> float: ...


class ConstantEfficiency:
    """Provider returning the same value everywhere."""

    def __init__(self, value: float = 1.0) -> None:
        if not 0.0 <= value <= 1.0:
            raise EfficiencyError(f"Efficiency must lie in [0, 1], got {value}")
        self.value = value

    def efficiency(self, x: float, y: float) -> float:
        return self.value


class EfficiencyTable:
    """
    Binned efficiency lookup.

    Values of x above the last cell use the last cell (efficiency plateau),
    values below the first cell, and any y outside the table, give 0.
    """

    def __init__(self, cells: np.ndarray, name: str = "") -> None:
        """
        Args:
            cells: Array of shape (n, 5): x_lo, x_hi, y_lo, y_hi, eff
            name: Label used in log messages
        """
        cells = np.asarray(cells, dtype=float)
        if cells.ndim != 2 or cells.shape[1] < 5 or len(cells) == 0:
            raise EfficiencyError(f"Efficiency table {name!r} needs rows of at least 5 columns")
        eff = cells[:, 4]
        if np.any((eff < 0.0) | (eff > 1.0)):
            raise EfficiencyError(f"Efficiency table {name!r} has values outside [0, 1]")

        self.cells = cells[:, :5]
        self.name = name
        self.x_max = self.cells[:, 1].max()

    @classmethod
    def from_file(cls, table_path: str | Path) -> EfficiencyTable:
        """
        Load a table from a text file.

        Raises:
            EfficiencyError: If the file is missing or malformed
        """
        table_path = Path(table_path)
        if not table_path.exists():
            raise EfficiencyError(f"Efficiency table not found: {table_path}")
        try:
            cells = np.loadtxt(table_path, comments="#", ndmin=2)
        except ValueError as e:
            raise EfficiencyError(f"Malformed efficiency table {table_path}: {e}")

        logging.getLogger("WjjFit.EfficiencyTable").debug(
            f"Loaded {len(cells)} cells from {table_path}"
        )
        return cls(cells, name=table_path.name)

    def efficiency(self, x: float, y: float) -> float:
        if x >= self.x_max:
            # plateau: evaluate inside the top x cell
            top = self.cells[self.cells[:, 1] == self.x_max]
            rows = top[(top[:, 2] <= y) & (y < top[:, 3])]
        else:
            c = self.cells
            rows = c[(c[:, 0] <= x) & (x < c[:, 1]) & (c[:, 2] <= y) & (y < c[:, 3])]
        if len(rows) == 0:
            return 0.0
        return float(rows[0, 4])


@dataclass
class EfficiencyProviders:
    """
    The set of efficiencies used by the event weights.

    Attributes:
        ele_reco: Electron supercluster to reconstruction
        ele_id: Electron reconstruction to identification (WP80)
        ele_trigger: Electron leg of the trigger
        mu_id: Muon reconstruction to isolated identification
        mu_trigger: Muon trigger
        jet_tight: Jet passes the tight (30 GeV) jet leg
        jet_loose: Jet passes the loose (25 GeV) but not the tight leg
        met: Missing-energy (PF MHT) leg
    """

    ele_reco: EfficiencyProvider
    ele_id: EfficiencyProvider
    ele_trigger: EfficiencyProvider
    mu_id: EfficiencyProvider
    mu_trigger: EfficiencyProvider
    jet_tight: EfficiencyProvider
    jet_loose: EfficiencyProvider
    met: EfficiencyProvider

    TABLE_FILES = {
        "ele_reco": "eleEffsSCToReco_ScaleFactors.txt",
        "ele_id": "eleEffsRecoToWP80_ScaleFactors.txt",
        "ele_trigger": "eleEffsWP80ToHLTEle27_May10ReReco.txt",
        "mu_id": "muonEffsRecoToIso_ScaleFactors.txt",
        "mu_trigger": "muonEffsIsoToHLT_data_LP_LWA.txt",
        "jet_tight": "eleEffsHLTEle2jPfMht_data_LWA_Jet30.txt",
        "jet_loose": "eleEffsHLTEle2jPfMht_data_LWA_Jet25Not30.txt",
        "met": "eleEffsHLTEle2jPfMht_data_LWA_PfMht.txt",
    }

    @classmethod
    def from_directory(cls, eff_dir: str | Path) -> EfficiencyProviders:
        """Load every table from its standard file name in eff_dir."""
        eff_dir = Path(eff_dir)
        tables = {
            field: EfficiencyTable.from_file(eff_dir / filename)
            for field, filename in cls.TABLE_FILES.items()
        }
        return cls(**tables)

    @classmethod
    def constant(cls, value: float = 1.0) -> EfficiencyProviders:
        """All providers returning the same efficiency."""
        return cls(**{field: ConstantEfficiency(value) for field in cls.TABLE_FILES})
