"""
Binned and unbinned representations of the observable

BinnedDistribution holds per-bin sums of weights and squared weights over
contiguous half-open bins [low, high); values outside [min, max) are
dropped, like histogram under/overflow. Builders read events (from an
awkward array or through TreeEventSource), apply the selection, weights
and the optional JES shift, and fill.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import awkward as ak
import numpy as np
import uproot

from .branch_config import BranchConfig
from .event_source import TreeEventSource
from .event_weights import EventWeightComputer
from .exceptions import ValidationError
from .fit_params import FitParameters
from .selection import SelectionPredicate


@dataclass(frozen=True, eq=False)
class BinnedDistribution:
    """
    Histogram with sum of weights and sum of squared weights per bin.

    Attributes:
        edges: nbins+1 increasing bin edges
        sumw: Sum of weights per bin
        sumw2: Sum of squared weights per bin
        entries: Number of fills inside the range
        name: Label
    """

    edges: np.ndarray
    sumw: np.ndarray
    sumw2: np.ndarray
    entries: int = 0
    name: str = ""

    def __post_init__(self) -> None:
        edges = np.asarray(self.edges, dtype=float)
        sumw = np.asarray(self.sumw, dtype=float)
        sumw2 = np.asarray(self.sumw2, dtype=float)
        if edges.ndim != 1 or len(edges) < 2 or np.any(np.diff(edges) <= 0):
            raise ValidationError("Bin edges must be a strictly increasing sequence of length > 1")
        if sumw.shape != (len(edges) - 1,) or sumw2.shape != sumw.shape:
            raise ValidationError(
                f"Expected {len(edges) - 1} bin contents, got {sumw.shape} and {sumw2.shape}"
            )
        object.__setattr__(self, "edges", edges)
        object.__setattr__(self, "sumw", sumw)
        object.__setattr__(self, "sumw2", sumw2)

    @classmethod
    def empty(cls, edges: np.ndarray, name: str = "") -> BinnedDistribution:
        n = len(edges) - 1
        return cls(edges, np.zeros(n), np.zeros(n), 0, name)

    @classmethod
    def from_values(
        cls, edges: np.ndarray, values: np.ndarray, weights: np.ndarray | None = None, name: str = ""
    ) -> BinnedDistribution:
        """
        Fill a new distribution.

        Args:
            edges: Bin edges
            values: Observable values
            weights: Per-value weights (1 if None)
            name: Label

        Returns:
            Filled BinnedDistribution
        """
        edges = np.asarray(edges, dtype=float)
        values = np.asarray(values, dtype=float)
        weights = np.ones_like(values) if weights is None else np.asarray(weights, dtype=float)

        nbins = len(edges) - 1
        idx = np.searchsorted(edges, values, side="right") - 1
        inside = (idx >= 0) & (idx < nbins)
        idx, w = idx[inside], weights[inside]

        sumw = np.bincount(idx, weights=w, minlength=nbins)
        sumw2 = np.bincount(idx, weights=w * w, minlength=nbins)
        return cls(edges, sumw, sumw2, int(inside.sum()), name)

    @property
    def nbins(self) -> int:
        return len(self.sumw)

    @property
    def low(self) -> np.ndarray:
        return self.edges[:-1]

    @property
    def high(self) -> np.ndarray:
        return self.edges[1:]

    @property
    def centers(self) -> np.ndarray:
        return 0.5 * (self.edges[:-1] + self.edges[1:])

    @property
    def widths(self) -> np.ndarray:
        return np.diff(self.edges)

    @property
    def errors(self) -> np.ndarray:
        return np.sqrt(self.sumw2)

    def total(self) -> float:
        return float(self.sumw.sum())

    def bins(self) -> list[tuple[float, float, float, float]]:
        """(low, high, sumw, sumw2) for every bin."""
        return list(zip(self.low, self.high, self.sumw, self.sumw2))

    def scaled(self, factor: float) -> BinnedDistribution:
        """Contents scaled by factor (squared weights by factor^2)."""
        return BinnedDistribution(
            self.edges, self.sumw * factor, self.sumw2 * factor**2, self.entries, self.name
        )

    def normalized(self) -> BinnedDistribution:
        """Contents scaled to unit sum; an empty histogram is returned unchanged."""
        total = self.total()
        if total == 0:
            return self
        return self.scaled(1.0 / total)

    def renamed(self, name: str) -> BinnedDistribution:
        return BinnedDistribution(self.edges, self.sumw, self.sumw2, self.entries, name)


def luminosity_scale(sample_lumi: float, target_lumi: float) -> float:
    """Factor bringing a sample generated for sample_lumi to target_lumi."""
    if sample_lumi <= 0:
        raise ValueError(f"Sample luminosity must be positive, got {sample_lumi}")
    return target_lumi / sample_lumi


class BinnedDistributionBuilder:
    """Fill BinnedDistributions from selected, weighted events"""

    def __init__(
        self,
        params: FitParameters,
        weight_computer: EventWeightComputer | None = None,
        branch_config: BranchConfig | None = None,
    ) -> None:
        """
        Parameters:
        - params: Fit parameters (binning, selection, JES shifts)
        - weight_computer: Source of per-event weights (unit weights if None)
        - branch_config: Branch names read from files (default configuration if None)
        """
        self.params = params
        self.weight_computer = weight_computer
        self.branch_config = branch_config if branch_config is not None else BranchConfig()
        self.selection = SelectionPredicate(params)
        self.logger = logging.getLogger("WjjFit.BinnedDistributionBuilder")

    def empty(self, name: str = "", bin_mult: float = 1.0) -> BinnedDistribution:
        """Empty distribution with the configured binning."""
        return BinnedDistribution.empty(self.params.binning.edges(bin_mult), name)

    def _weighted(self, no_cuts: bool, cut_override: str) -> bool:
        return self.weight_computer is not None and self.weight_computer.applies_corrections(
            no_cuts, cut_override
        )

    def _fill(
        self,
        events: ak.Array,
        name: str,
        is_electron: bool,
        jes_index: int,
        no_cuts: bool,
        bin_mult: float,
        cut_override: str,
    ) -> BinnedDistribution:
        values = ak.to_numpy(events[self.params.var]).astype(float)
        if self.weight_computer is not None:
            weights = self.weight_computer.weights(events, is_electron, no_cuts, cut_override)
        else:
            weights = np.ones(len(values))

        scale = self.params.jes_scale(jes_index)
        hist = BinnedDistribution.from_values(
            self.params.binning.edges(bin_mult), values * (1.0 + scale), weights, name
        )
        self.logger.info(
            f"Filled {name or 'histogram'}: {hist.entries} entries, "
            f"sum of weights {hist.total():.2f} (JES shift {scale:+.3f})"
        )
        return hist

    def from_events(
        self,
        events: ak.Array,
        name: str = "",
        is_electron: bool = True,
        jes_index: int = -1,
        no_cuts: bool = False,
        bin_mult: float = 1.0,
        cut_override: str = "",
    ) -> BinnedDistribution:
        """
        Build a distribution from in-memory events

        Parameters:
        - events: Awkward record array
        - name: Histogram name
        - is_electron: Channel used for the weights
        - jes_index: Index into params.jes_scales (-1: no shift)
        - no_cuts: Skip the selection entirely
        - bin_mult: Multiplier on the uniform bin count
        - cut_override: Use this selection instead of the derived one

        Returns:
        - BinnedDistribution
        """
        if not no_cuts:
            expression = cut_override if len(cut_override) > 0 else None
            events = events[self.selection.mask(events, expression=expression)]
        return self._fill(events, name, is_electron, jes_index, no_cuts, bin_mult, cut_override)

    def from_file(
        self,
        file_path: str | Path,
        name: str = "",
        is_electron: bool = True,
        jes_index: int = -1,
        no_cuts: bool = False,
        bin_mult: float = 1.0,
        cut_override: str = "",
    ) -> BinnedDistribution | None:
        """
        Build a distribution from a tree on disk

        Returns:
        - BinnedDistribution, or None if the tree is missing from the file
        """
        source = TreeEventSource(file_path, self.params.tree_name)
        branches = self.branch_config.branches_for(
            self.params.var, is_electron, self._weighted(no_cuts, cut_override)
        )
        if no_cuts:
            cut = None
        else:
            cut = cut_override if len(cut_override) > 0 else self.selection.expression()

        events = source.read(branches, cut=cut)
        if events is None:
            return None
        return self._fill(events, name, is_electron, jes_index, no_cuts, bin_mult, cut_override)


class UnbinnedSampleBuilder:
    """
    Unweighted observable values of selected events.

    Unlike the binned path, no efficiency weights are applied: the
    unbinned sample feeds fits that assume unweighted data.
    """

    def __init__(self, params: FitParameters) -> None:
        self.params = params
        self.selection = SelectionPredicate(params)
        self.logger = logging.getLogger("WjjFit.UnbinnedSampleBuilder")

    def from_events(
        self, events: ak.Array, truncated: bool = False, no_cuts: bool = False
    ) -> np.ndarray:
        """
        Observable values of passing events

        Parameters:
        - events: Awkward record array
        - truncated: Exclude the blinded window
        - no_cuts: Keep every event

        Returns:
        - 1D numpy array
        """
        if not no_cuts:
            events = events[self.selection.mask(events, truncated)]
        values = ak.to_numpy(events[self.params.var]).astype(float)
        self.logger.info(f"Unbinned sample with {len(values)} events")
        return values

    def from_file(
        self, file_path: str | Path, truncated: bool = False, no_cuts: bool = False
    ) -> np.ndarray | None:
        """Same as from_events reading from a tree; None if the tree is missing."""
        source = TreeEventSource(file_path, self.params.tree_name)
        cut = None if no_cuts else self.selection.expression(truncated)
        events = source.read([self.params.var], cut=cut)
        if events is None:
            return None
        return ak.to_numpy(events[self.params.var]).astype(float)


def sample_from_distribution(
    dist: BinnedDistribution, n_entries: int, rng: np.random.Generator
) -> np.ndarray:
    """
    Draw values following the histogram shape.

    A bin is chosen with probability proportional to its content, then the
    value is uniform inside the bin.
    """
    total = dist.total()
    if n_entries <= 0 or total <= 0:
        return np.empty(0)
    probs = np.clip(dist.sumw, 0.0, None)
    probs = probs / probs.sum()
    idx = rng.choice(dist.nbins, size=n_entries, p=probs)
    return dist.low[idx] + rng.random(n_entries) * dist.widths[idx]


def write_random_tree(
    dist: BinnedDistribution,
    file_path: str | Path,
    params: FitParameters,
    rng: np.random.Generator,
) -> Path:
    """
    Write a toy tree with as many draws from dist as it has entries.

    The tree is named params.tree_name and holds one double branch
    params.var, so it can be read back like a real sample.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    values = sample_from_distribution(dist, dist.entries, rng)
    with uproot.recreate(file_path) as file:
        file[params.tree_name] = {params.var: values.astype(np.float64)}
    logging.getLogger("WjjFit.Toys").info(f"Wrote {len(values)} toy events to {file_path}")
    return file_path

