"""
Fit configuration for the dijet-mass template fit

Defines the immutable FitParameters bundle (observable, range, binning,
jet category, truncation window, extra cuts, luminosity, efficiency and
JES settings) and its TOML loader.

Expected TOML layout:

    [fit]
    var = "Mass2j_PFCor"
    min_mass = 40.0
    max_mass = 200.0
    nbins = 16
    bin_edges = []            # optional, overrides nbins when len > 1
    njets = 2
    min_trunc = 65.0          # optional blinded window
    max_trunc = 95.0
    cuts = "W_mt > 50."
    int_lumi = 2100.0         # pb^-1
    do_eff_corrections = true
    jes_scales = [0.02, -0.02]
    tree_name = "WJet"
    eff_dir = "EffTableDir/"
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import tomli

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class BinEdges:
    """
    Binning of the observable.

    Uniform mode is (nbins, low, high). Explicit mode is a strictly
    increasing edge sequence; when given it takes precedence everywhere.
    """

    nbins: int
    low: float
    high: float
    explicit: tuple[float, ...] = ()

    @property
    def is_variable(self) -> bool:
        return len(self.explicit) > 1

    def nbins_for(self, bin_mult: float = 1.0) -> int:
        """Number of bins, with the multiplier applied to uniform binning only."""
        if self.is_variable:
            return len(self.explicit) - 1
        return int(self.nbins * bin_mult)

    def edges(self, bin_mult: float = 1.0) -> np.ndarray:
        """
        Return the bin edge array.

        Args:
            bin_mult: Multiplier on the uniform bin count (finer template
                      histograms); ignored for explicit edges

        Returns:
            Array of nbins+1 edges
        """
        if self.is_variable:
            return np.asarray(self.explicit, dtype=float)
        return np.linspace(self.low, self.high, self.nbins_for(bin_mult) + 1)


@dataclass(frozen=True)
class FitParameters:
    """
    Immutable configuration for one fit setup.

    Attributes:
        var: Observable branch name
        min_mass: Lower edge of the fit range
        max_mass: Upper edge of the fit range
        nbins: Number of uniform bins
        bin_edges: Explicit bin edges (len > 1 switches to variable binning)
        njets: Jet multiplicity category (< 2 means 2 or 3 jets)
        min_trunc: Lower bound of the excluded (blinded) window
        max_trunc: Upper bound of the excluded (blinded) window
        cuts: Additional selection appended to the predicate
        int_lumi: Integrated luminosity in pb^-1
        do_eff_corrections: Apply per-event efficiency weights
        jes_scales: Relative jet energy scale shifts, indexed by systematic
        tree_name: Name of the event tree in the input files
        eff_dir: Directory holding the efficiency tables
    """

    var: str = "Mass2j_PFCor"
    min_mass: float = 40.0
    max_mass: float = 200.0
    nbins: int = 16
    bin_edges: tuple[float, ...] = ()
    njets: int = 2
    min_trunc: float | None = None
    max_trunc: float | None = None
    cuts: str = ""
    int_lumi: float = 1000.0
    do_eff_corrections: bool = False
    jes_scales: tuple[float, ...] = ()
    tree_name: str = "WJet"
    eff_dir: str = ""

    def __post_init__(self) -> None:
        # Lists coming from TOML are frozen into tuples
        object.__setattr__(self, "bin_edges", tuple(float(e) for e in self.bin_edges))
        object.__setattr__(self, "jes_scales", tuple(float(s) for s in self.jes_scales))
        self._validate()

    def _validate(self) -> None:
        """
        Check the configuration for consistency.

        Raises:
            ConfigurationError: On any inconsistent setting
        """
        if not self.var:
            raise ConfigurationError("Observable name 'var' must not be empty")
        if self.min_mass >= self.max_mass:
            raise ConfigurationError(
                f"Invalid fit range: min_mass ({self.min_mass}) must be below "
                f"max_mass ({self.max_mass})"
            )
        if self.nbins < 1:
            raise ConfigurationError(f"nbins must be positive, got {self.nbins}")

        if len(self.bin_edges) == 1:
            raise ConfigurationError("bin_edges needs at least two entries")
        if len(self.bin_edges) > 1:
            edges = np.asarray(self.bin_edges)
            if np.any(np.diff(edges) <= 0):
                raise ConfigurationError(
                    f"bin_edges must be strictly increasing: {list(self.bin_edges)}"
                )
            if not (np.isclose(edges[0], self.min_mass) and np.isclose(edges[-1], self.max_mass)):
                raise ConfigurationError(
                    f"bin_edges [{edges[0]}, {edges[-1]}] do not match the fit range "
                    f"[{self.min_mass}, {self.max_mass}]"
                )

        if (self.min_trunc is None) != (self.max_trunc is None):
            raise ConfigurationError("min_trunc and max_trunc must be given together")
        if self.min_trunc is not None:
            if not (self.min_mass < self.min_trunc < self.max_trunc < self.max_mass):
                raise ConfigurationError(
                    f"Truncation window [{self.min_trunc}, {self.max_trunc}] must lie "
                    f"strictly inside [{self.min_mass}, {self.max_mass}]"
                )

        if self.int_lumi <= 0:
            raise ConfigurationError(f"int_lumi must be positive, got {self.int_lumi}")

    @property
    def binning(self) -> BinEdges:
        return BinEdges(self.nbins, self.min_mass, self.max_mass, self.bin_edges)

    @property
    def has_truncation(self) -> bool:
        return self.min_trunc is not None

    def jes_scale(self, index: int) -> float:
        """Relative JES shift for a systematic index, 0 when out of range."""
        if 0 <= index < len(self.jes_scales):
            return self.jes_scales[index]
        return 0.0

    def with_njets(self, njets: int) -> FitParameters:
        """Return a copy for another jet multiplicity category."""
        return dataclasses.replace(self, njets=njets)

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> FitParameters:
        """
        Build parameters from a plain dictionary.

        Raises:
            ConfigurationError: If unknown keys are present
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown fit parameters: {unknown}")
        return cls(**values)

    @classmethod
    def from_toml(cls, config_path: str | Path, section: str = "fit") -> FitParameters:
        """
        Load parameters from a TOML file.

        Args:
            config_path: Path to the TOML file
            section: Table holding the fit parameters

        Returns:
            FitParameters instance

        Raises:
            ConfigurationError: If file not found, parsing fails or the
                                section is missing
        """
        config_path = Path(config_path)
        try:
            with open(config_path, "rb") as f:
                config = tomli.load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Error parsing TOML file {config_path}: {e}")

        if section not in config:
            raise ConfigurationError(f"Section [{section}] missing from {config_path}")
        return cls.from_dict(config[section])
