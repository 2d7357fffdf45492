"""
Module for building the event selection of the dijet-mass fit

The selection is a single expression in uproot's cut syntax (Python
operators on whole branches), so the same string filters events while
reading a tree and an in-memory awkward array:

    ((Mass2j_PFCor > 40.000) & (Mass2j_PFCor < 200.000)) & (evtNJ == 2) & (W_mt > 50.)

Additional cuts are written the same way; jet collections are indexed per
event with array syntax, e.g. JetPFCor_Pt[:, 0] > 40.
"""

from __future__ import annotations

import logging

import awkward as ak
import numpy as np

from .exceptions import ConfigurationError
from .fit_params import FitParameters

JET_COUNT_BRANCH = "evtNJ"


class SelectionPredicate:
    """Selection derived from one FitParameters instance"""

    def __init__(self, params: FitParameters, njets_branch: str = JET_COUNT_BRANCH):
        """
        Initialize the selection

        Parameters:
        - params: Fit parameters (observable, range, jet category, cuts)
        - njets_branch: Branch holding the jet multiplicity
        """
        self.params = params
        self.njets_branch = njets_branch
        self.logger = logging.getLogger("WjjFit.SelectionPredicate")

    def jet_cut(self) -> str:
        """Jet multiplicity requirement; categories below 2 mean 2 or 3 jets."""
        n = self.njets_branch
        if self.params.njets < 2:
            return f"(({n} == 2) | ({n} == 3))"
        return f"({n} == {self.params.njets})"

    def mass_cut(self, truncated: bool = False) -> str:
        """
        Observable window, optionally with the blinded region removed

        Parameters:
        - truncated: Keep only [min, min_trunc] and [max_trunc, max]

        Returns:
        - Cut expression
        """
        p = self.params
        var = p.var
        if truncated:
            if not p.has_truncation:
                raise ConfigurationError(
                    "Truncated selection requested but min_trunc/max_trunc are not set"
                )
            return (
                f"((({var} > {p.min_mass:.3f}) & ({var} < {p.min_trunc:.3f})) | "
                f"(({var} > {p.max_trunc:.3f}) & ({var} < {p.max_mass:.3f})))"
            )
        return f"(({var} > {p.min_mass:.3f}) & ({var} < {p.max_mass:.3f}))"

    def expression(self, truncated: bool = False) -> str:
        """Full selection: mass window AND jet category AND extra cuts."""
        cut = f"{self.mass_cut(truncated)} & {self.jet_cut()}"
        if len(self.params.cuts) > 0:
            cut += f" & ({self.params.cuts})"
        return f"({cut})"

    def mask(self, events: ak.Array, truncated: bool = False, expression: str | None = None) -> np.ndarray:
        """
        Evaluate the selection on in-memory events

        Parameters:
        - events: Awkward record array with all branches used by the cut
        - truncated: Use the truncated mass window
        - expression: Evaluate this expression instead of the derived one

        Returns:
        - Boolean numpy mask
        """
        cut = expression if expression is not None else self.expression(truncated)
        namespace = {field: events[field] for field in events.fields}
        namespace.update({"abs": abs, "np": np, "sqrt": np.sqrt, "cos": np.cos})
        try:
            result = eval(cut, {"__builtins__": {}}, namespace)
        except NameError as e:
            raise ConfigurationError(f"Selection '{cut}' uses an unknown branch: {e}")

        mask = ak.to_numpy(result).astype(bool)
        self.logger.debug(f"Selection {cut}: {mask.sum()}/{len(events)} events passed")
        return mask

    def apply(self, events: ak.Array, truncated: bool = False) -> ak.Array:
        """Return the events passing the selection."""
        selected = events[self.mask(events, truncated)]
        self.logger.info(f"Selection: {len(selected)}/{len(events)} events passed")
        return selected
