"""
Chi-square comparison of a density model with binned data

For every data point the model's expected count in the point's x range is
compared with the observation. The statistical uncertainty of every
template entering the model (finite MC samples) is propagated through
the composite structure and added in quadrature to the data error:

    chi2 = sum_i (y_i - mu_i)^2 / (e_i^2 + sigma_i^2)

with e_i the lower data error when y_i > mu_i and the upper one otherwise.
Points with y_i == 0 are treated as unfilled and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy import stats

from .density_models import (
    EXTENDED,
    FRACTIONAL,
    CompositeModel,
    DensityModel,
    EmpiricalComponent,
)
from .exceptions import FittingError
from .histograms import BinnedDistribution

ONE_SIGMA = 0.682689492137086


@dataclass(frozen=True, eq=False)
class DataPoints:
    """
    Binned data as drawn on a plot: point position, value and asymmetric
    errors in x and y.
    """

    x: np.ndarray
    y: np.ndarray
    eyl: np.ndarray
    eyh: np.ndarray
    exl: np.ndarray
    exh: np.ndarray

    def __post_init__(self) -> None:
        n = len(np.atleast_1d(self.x))
        for name in ("x", "y", "eyl", "eyh", "exl", "exh"):
            arr = np.atleast_1d(np.asarray(getattr(self, name), dtype=float))
            if len(arr) != n:
                raise FittingError(f"DataPoints.{name} has {len(arr)} entries, expected {n}")
            object.__setattr__(self, name, arr)

    def __len__(self) -> int:
        return len(self.x)

    @classmethod
    def from_distribution(cls, dist: BinnedDistribution, errors: str = "poisson") -> DataPoints:
        """
        Data points at the bin centres of a distribution.

        Args:
            dist: Observed distribution
            errors: "poisson" for central 68.27% Poisson intervals (counts),
                    "sumw2" for symmetric sqrt(sum of squared weights)

        Returns:
            DataPoints
        """
        y = dist.sumw
        if errors == "poisson":
            eyl, eyh = poisson_interval(y)
        elif errors == "sumw2":
            eyl = eyh = np.sqrt(dist.sumw2)
        else:
            raise ValueError(f"Unknown error mode {errors!r}, expected 'poisson' or 'sumw2'")
        x = dist.centers
        return cls(x, y, eyl, eyh, x - dist.low, dist.high - x)


def poisson_interval(n: np.ndarray, cl: float = ONE_SIGMA) -> tuple[np.ndarray, np.ndarray]:
    """
    Lower and upper errors of central Poisson (Garwood) intervals.

    Args:
        n: Observed counts
        cl: Confidence level

    Returns:
        (lower error, upper error)
    """
    n = np.asarray(n, dtype=float)
    alpha = 1.0 - cl
    lower = np.where(n > 0, 0.5 * stats.chi2.ppf(alpha / 2, 2 * np.maximum(n, 1e-300)), 0.0)
    upper = 0.5 * stats.chi2.ppf(1 - alpha / 2, 2 * (n + 1))
    return n - lower, upper - n


def _bin_fraction(model: DensityModel, lo: float, hi: float) -> float:
    full = model.integral(model.low, model.high)
    if full == 0:
        return 0.0
    return model.integral(lo, hi) / full


def propagated_variance(model: DensityModel, lo: float, hi: float, nbin: float) -> float:
    """
    Variance of the expected count nbin in [lo, hi) from template statistics.

    Empirical components contribute nbin^2 * sumw2 / sumw^2 over the
    template bins overlapping the range; composite models split nbin (or
    their own yields) among components and sum the components' variances,
    taken as independent.

    Args:
        model: Density model
        lo: Lower edge of the evaluation range
        hi: Upper edge of the evaluation range
        nbin: Expected count of this model in the range

    Returns:
        Variance (0 for templates with no weight in range)

    Raises:
        FittingError: For an unknown model type
    """
    if isinstance(model, EmpiricalComponent):
        overlap = model.overlapping_bins(lo, hi)
        sumw = model.distribution.sumw[overlap].sum()
        sumw2 = model.distribution.sumw2[overlap].sum()
        if sumw == 0:
            return 0.0
        return float(nbin**2 * sumw2 / sumw**2)

    if isinstance(model, CompositeModel):
        variance = 0.0
        for i, component in enumerate(model.components):
            if model.mode == EXTENDED:
                sub_count = model.coefficients[i] * _bin_fraction(component, lo, hi)
            elif model.mode == FRACTIONAL:
                if i < len(model.coefficients):
                    sub_count = model.coefficients[i] * nbin
                else:
                    sub_count = (1.0 - sum(model.coefficients)) * nbin
            else:
                sub_count = component.expected_events() * _bin_fraction(component, lo, hi)
            variance += propagated_variance(component, lo, hi, sub_count)
        return variance

    raise FittingError(f"Cannot propagate variance through {type(model).__name__}")


@dataclass(frozen=True, eq=False)
class GoodnessOfFitResult:
    """
    Outcome of one chi-square evaluation.

    Attributes:
        chi2: Total statistic
        nbins: Number of data points used
        x: Positions of the used points
        observed: Observed values of the used points
        expected: Model expectation of the used points
        model_variance: Propagated template variance of the used points
        pulls: Signed pulls of the used points
    """

    chi2: float
    nbins: int
    x: np.ndarray
    observed: np.ndarray
    expected: np.ndarray
    model_variance: np.ndarray
    pulls: np.ndarray

    def ndof(self, n_params: int = 0) -> int:
        return self.nbins - n_params

    def p_value(self, n_params: int = 0) -> float:
        """Chi-square probability for nbins - n_params degrees of freedom."""
        ndof = self.ndof(n_params)
        if ndof <= 0:
            raise FittingError(f"No degrees of freedom left ({self.nbins} bins, {n_params} parameters)")
        return float(stats.chi2.sf(self.chi2, ndof))

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "x": self.x,
                "observed": self.observed,
                "expected": self.expected,
                "model_variance": self.model_variance,
                "pull": self.pulls,
            }
        )


class GoodnessOfFitEvaluator:
    """Compute the template-corrected chi-square of a model against data"""

    def __init__(self) -> None:
        self.logger = logging.getLogger("WjjFit.GoodnessOfFitEvaluator")

    def expected_count(self, model: DensityModel, lo: float, hi: float, n_total: float) -> float:
        """n_total times the model's share of [lo, hi); 0 if the model integrates to 0."""
        return n_total * _bin_fraction(model, lo, hi)

    def evaluate(
        self,
        data: DataPoints | BinnedDistribution,
        model: DensityModel,
        normalization: float | None = None,
    ) -> GoodnessOfFitResult:
        """
        Compare data with a model

        Args:
            data: Data points (a BinnedDistribution is converted with
                  Poisson errors)
            model: Fitted density model
            normalization: Total expected events; model.expected_events() if None

        Returns:
            GoodnessOfFitResult
        """
        if isinstance(data, BinnedDistribution):
            data = DataPoints.from_distribution(data)

        n_total = model.expected_events() if normalization is None else normalization

        chi2 = 0.0
        used_x, observed, expected, variances, pulls = [], [], [], [], []
        for i in range(len(data)):
            x, y = data.x[i], data.y[i]
            lo, hi = x - data.exl[i], x + data.exh[i]

            avg = self.expected_count(model, lo, hi, n_total)
            pdf_sig2 = propagated_variance(model, lo, hi, avg)

            if y == 0:
                continue

            error = data.eyl[i] if y > avg else data.eyh[i]
            denominator = error * error + pdf_sig2
            if denominator > 0:
                pull = (y - avg) / np.sqrt(denominator)
            else:
                pull = 0.0
            chi2 += pull * pull

            used_x.append(x)
            observed.append(y)
            expected.append(avg)
            variances.append(pdf_sig2)
            pulls.append(pull)

        result = GoodnessOfFitResult(
            chi2=float(chi2),
            nbins=len(pulls),
            x=np.array(used_x),
            observed=np.array(observed),
            expected=np.array(expected),
            model_variance=np.array(variances),
            pulls=np.array(pulls),
        )
        self.logger.info(
            f"chi2 = {result.chi2:.3f} over {result.nbins} bins for model {model.name or '<unnamed>'}"
        )
        return result
