"""
Density models built from binned templates

Two model kinds exist:

- EmpiricalComponent: piecewise-constant density from one
  BinnedDistribution, normalized to unit integral over its range.
- CompositeModel: ordered sub-models (empirical or composite, any depth)
  added with coefficients. The number of coefficients selects the mode:

    len(coefficients) == len(components)      "fractional"  when every
                                                             coefficient lies in
                                                             [0, 1] and they sum
                                                             to 1, otherwise
                                              "extended"    yields
    len(coefficients) == len(components) - 1  "fractional"  fractions, last
                                                             one takes the rest
    no coefficients, two or more components   "intrinsic"   each component
                                                             brings its own
                                                             expected events

  Any other coefficient count is rejected.

Models are immutable once built. ModelWorkspace keeps them by name so a
template requested twice is built once.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union

import numpy as np

from .exceptions import ConfigurationError
from .histograms import BinnedDistribution

EXTENDED, FRACTIONAL, INTRINSIC = "extended", "fractional", "intrinsic"


def _complete_fractions(coefficients: Sequence[float]) -> bool:
    """Coefficients in [0, 1] summing to 1 are fractions with nothing left over."""
    return all(0.0 <= c <= 1.0 for c in coefficients) and bool(
        np.isclose(sum(coefficients), 1.0)
    )


class EmpiricalComponent:
    """
    Histogram template used as a density.

    Attributes:
        name: Model name
        distribution: Underlying BinnedDistribution (keeps sumw2 for the
                      statistical uncertainty of the template)
    """

    def __init__(self, distribution: BinnedDistribution, name: str = "") -> None:
        self.distribution = distribution
        self.name = name or distribution.name

    @property
    def low(self) -> float:
        return float(self.distribution.edges[0])

    @property
    def high(self) -> float:
        return float(self.distribution.edges[-1])

    def expected_events(self) -> float:
        """Sum of weights of the template."""
        return self.distribution.total()

    def bin_densities(self) -> np.ndarray:
        """Density value in every template bin (zeros for an empty template)."""
        dist = self.distribution
        total = dist.total()
        if total == 0:
            return np.zeros(dist.nbins)
        return dist.sumw / (total * dist.widths)

    def density(self, x: float) -> float:
        dist = self.distribution
        idx = np.searchsorted(dist.edges, x, side="right") - 1
        if idx < 0 or idx >= dist.nbins:
            return 0.0
        return float(self.bin_densities()[idx])

    def integral(self, lo: float, hi: float) -> float:
        """Normalized integral over [lo, hi); partial bins count by overlap."""
        dist = self.distribution
        total = dist.total()
        if total == 0 or hi <= lo:
            return 0.0
        overlap = np.clip(np.minimum(dist.high, hi) - np.maximum(dist.low, lo), 0.0, None)
        return float(np.sum(dist.sumw * overlap / dist.widths) / total)

    def overlapping_bins(self, lo: float, hi: float) -> np.ndarray:
        """Boolean mask of template bins overlapping [lo, hi)."""
        dist = self.distribution
        return (dist.low < hi) & (dist.high > lo)

    def __repr__(self) -> str:
        return f"EmpiricalComponent({self.name!r}, nbins={self.distribution.nbins})"


class CompositeModel:
    """
    Sum of sub-models.

    Attributes:
        name: Model name
        components: Sub-models in order
        coefficients: Yields or fractions (see module docstring)
        norm: Expected event count overriding the one implied by the mode
    """

    def __init__(
        self,
        components: Sequence[DensityModel],
        coefficients: Sequence[float] = (),
        name: str = "",
        norm: float | None = None,
    ) -> None:
        if len(components) == 0:
            raise ConfigurationError(f"Composite model {name!r} needs at least one component")

        self.components = tuple(components)
        self.coefficients = tuple(float(c) for c in coefficients)
        self.name = name
        self.norm = norm
        self.mode = self._coefficient_mode()
        self._validate()

    def _coefficient_mode(self) -> str:
        ncomp, ncoef = len(self.components), len(self.coefficients)
        if ncoef == ncomp:
            if _complete_fractions(self.coefficients):
                return FRACTIONAL
            return EXTENDED
        if ncoef == ncomp - 1:
            return FRACTIONAL
        if ncoef == 0:
            return INTRINSIC
        raise ConfigurationError(
            f"Composite model {self.name!r}: {ncoef} coefficients for {ncomp} components; "
            f"give one per component, one per component but the last, or none"
        )

    def _validate(self) -> None:
        if self.mode == FRACTIONAL:
            for coef in self.coefficients:
                if not 0.0 <= coef <= 1.0:
                    raise ConfigurationError(
                        f"Composite model {self.name!r}: fraction {coef} outside [0, 1]"
                    )
            total = sum(self.coefficients)
            if total > 1.0 and not np.isclose(total, 1.0):
                raise ConfigurationError(
                    f"Composite model {self.name!r}: fractions sum to "
                    f"{total} > 1"
                )

        low, high = self.components[0].low, self.components[0].high
        for comp in self.components[1:]:
            if not (np.isclose(comp.low, low) and np.isclose(comp.high, high)):
                raise ConfigurationError(
                    f"Composite model {self.name!r}: component {comp.name!r} covers "
                    f"[{comp.low}, {comp.high}], expected [{low}, {high}]"
                )

    @property
    def low(self) -> float:
        return self.components[0].low

    @property
    def high(self) -> float:
        return self.components[0].high

    def fractions(self) -> np.ndarray:
        """Share of each component in the total density."""
        if self.mode == FRACTIONAL:
            if len(self.coefficients) == len(self.components):
                return np.array(self.coefficients)
            return np.array(list(self.coefficients) + [1.0 - sum(self.coefficients)])
        if self.mode == EXTENDED:
            weights = np.array(self.coefficients)
        else:
            weights = np.array([comp.expected_events() for comp in self.components])
        total = weights.sum()
        if total == 0:
            return np.zeros(len(self.components))
        return weights / total

    def expected_events(self) -> float:
        if self.norm is not None:
            return self.norm
        if self.mode == EXTENDED:
            return sum(self.coefficients)
        return sum(comp.expected_events() for comp in self.components)

    def density(self, x: float) -> float:
        return float(
            sum(f * comp.density(x) for f, comp in zip(self.fractions(), self.components))
        )

    def integral(self, lo: float, hi: float) -> float:
        """Normalized integral over [lo, hi)."""
        return float(
            sum(f * comp.integral(lo, hi) for f, comp in zip(self.fractions(), self.components))
        )

    def __repr__(self) -> str:
        return f"CompositeModel({self.name!r}, mode={self.mode}, components={list(self.components)})"


DensityModel = Union[EmpiricalComponent, CompositeModel]


class ModelWorkspace:
    """Named store of density models."""

    def __init__(self) -> None:
        self._models: dict[str, DensityModel] = {}
        self.logger = logging.getLogger("WjjFit.ModelWorkspace")

    def __contains__(self, name: str) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)

    def get(self, name: str) -> DensityModel | None:
        return self._models.get(name)

    def register(self, model: DensityModel) -> DensityModel:
        """Store model under its name; an existing entry wins and is returned."""
        if not model.name:
            raise ConfigurationError("Models stored in a workspace need a name")
        if model.name in self._models:
            self.logger.debug(f"Model {model.name} already in workspace, keeping existing one")
            return self._models[model.name]
        self._models[model.name] = model
        return model

    def names(self) -> list[str]:
        return list(self._models)


class DensityModelBuilder:
    """Turn binned templates into density models, reusing existing ones by name."""

    def __init__(self, workspace: ModelWorkspace | None = None) -> None:
        self.workspace = workspace if workspace is not None else ModelWorkspace()
        self.logger = logging.getLogger("WjjFit.DensityModelBuilder")

    def build(self, distribution: BinnedDistribution, name: str) -> DensityModel:
        """
        Empirical density for a template

        Args:
            distribution: Template histogram
            name: Model name

        Returns:
            The model registered under name (built now if absent)
        """
        existing = self.workspace.get(name)
        if existing is not None:
            return existing
        self.logger.info(
            f"Building template model {name} from {distribution.nbins} bins, "
            f"sum of weights {distribution.total():.2f}"
        )
        return self.workspace.register(EmpiricalComponent(distribution, name))

    def composite(
        self,
        name: str,
        components: Sequence[DensityModel],
        coefficients: Sequence[float] = (),
        norm: float | None = None,
    ) -> DensityModel:
        """Composite model registered under name (built now if absent)."""
        existing = self.workspace.get(name)
        if existing is not None:
            return existing
        return self.workspace.register(CompositeModel(components, coefficients, name, norm))
