"""
Per-event efficiency weights

weight = lepton efficiencies x (jet trigger x MET trigger, electrons only)

The electron dataset was partly recorded with a single-electron trigger
(the first SINGLE_ELECTRON_CUTOFF_LUMI pb^-1) and partly with the
electron + dijet + MHT trigger. Instead of splitting the sample, each
electron event gets the jet and MET trigger efficiencies with probability
1 - cutoff / intLumi, decided by one draw from the weight computer's
random stream.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import awkward as ak
import numpy as np
from tqdm import tqdm

from ..utils.logging_config import get_tqdm_kwargs
from .branch_config import BranchConfig
from .efficiency_tables import EfficiencyProviders
from .fit_params import FitParameters
from .trigger_efficiency import MAX_JETS, TRIGGER_CONDITIONS, dijet_efficiency

SINGLE_ELECTRON_CUTOFF_LUMI = 1000.0  # pb^-1
DEFAULT_SEED = 987654321


class EventWeightComputer:
    """
    Compute multiplicative efficiency weights event by event.

    The random stream is owned by the instance: it is created once (from
    the seed, or passed in) and consumed in event order, one draw per
    electron event that gets weighted.
    """

    def __init__(
        self,
        params: FitParameters,
        providers: EfficiencyProviders,
        rng: np.random.Generator | None = None,
        seed: int = DEFAULT_SEED,
        trigger_condition: str = "any",
        branch_config: BranchConfig | None = None,
    ) -> None:
        """
        Args:
            params: Fit parameters (luminosity, correction switch)
            providers: Efficiency lookups
            rng: Random stream; built from seed when None
            seed: Seed used when no stream is given
            trigger_condition: Jet trigger firing condition ("any" or "pair")
            branch_config: Branch names (default configuration if None)
        """
        if trigger_condition not in TRIGGER_CONDITIONS:
            raise ValueError(
                f"Unknown trigger condition {trigger_condition!r}, "
                f"expected one of {TRIGGER_CONDITIONS}"
            )
        self.params = params
        self.providers = providers
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.trigger_condition = trigger_condition
        self.branch_config = branch_config if branch_config is not None else BranchConfig()
        self.logger = logging.getLogger("WjjFit.EventWeightComputer")

    def applies_corrections(self, no_cuts: bool = False, cut_override: str = "") -> bool:
        """Weights are only applied on the nominal selection path."""
        return self.params.do_eff_corrections and not no_cuts and len(cut_override) < 1

    def lepton_efficiency(self, pt: float, eta: float, is_electron: bool) -> float:
        p = self.providers
        if is_electron:
            return (
                p.ele_reco.efficiency(pt, eta)
                * p.ele_id.efficiency(pt, eta)
                * p.ele_trigger.efficiency(pt, eta)
            )
        return p.mu_id.efficiency(pt, eta) * p.mu_trigger.efficiency(pt, eta)

    def jet_trigger_efficiency(self, njets: int, jet_pt, jet_eta) -> float:
        """Jet leg efficiency from the per-jet tight and loose-only efficiencies."""
        eff_tight = np.zeros(MAX_JETS)
        eff_loose = np.zeros(MAX_JETS)
        for i in range(min(MAX_JETS, len(jet_pt))):
            eff_tight[i] = self.providers.jet_tight.efficiency(jet_pt[i], jet_eta[i])
            eff_loose[i] = self.providers.jet_loose.efficiency(jet_pt[i], jet_eta[i])
        return dijet_efficiency(
            min(int(njets), MAX_JETS), eff_tight, eff_loose, condition=self.trigger_condition
        )

    def _event_weight(
        self, lep_pt, lep_eta, jet_pt, jet_eta, met, njets, is_electron: bool
    ) -> float:
        weight = self.lepton_efficiency(lep_pt, lep_eta, is_electron)

        hlt_eff_jets = self.jet_trigger_efficiency(njets, jet_pt, jet_eta)
        hlt_eff_met = self.providers.met.efficiency(met, 0.0)

        if is_electron and (
            self.rng.random() > SINGLE_ELECTRON_CUTOFF_LUMI / self.params.int_lumi
        ):
            weight *= hlt_eff_jets * hlt_eff_met
        return weight

    def weight(
        self,
        event: Mapping[str, Any],
        is_electron: bool,
        no_cuts: bool = False,
        cut_override: str = "",
    ) -> float:
        """
        Weight of a single event.

        Args:
            event: Record with lepton, jet, MET and jet-count fields
            is_electron: Electron channel if True, muon otherwise
            no_cuts: Event taken without selection (no correction)
            cut_override: Non-empty when a custom selection was used (no correction)

        Returns:
            Multiplicative event weight
        """
        if not self.applies_corrections(no_cuts, cut_override):
            return 1.0

        w = self.branch_config.weighting
        pt_name, eta_name = self.branch_config.lepton_branches(is_electron)
        return self._event_weight(
            float(event[pt_name]),
            float(event[eta_name]),
            np.asarray(event[w["jet_pt"]], dtype=float),
            np.asarray(event[w["jet_eta"]], dtype=float),
            float(event[w["met"]]),
            int(event[w["njets"]]),
            is_electron,
        )

    def weights(
        self,
        events: ak.Array,
        is_electron: bool,
        no_cuts: bool = False,
        cut_override: str = "",
    ) -> np.ndarray:
        """
        Weights of all events, in order.

        Returns:
            Array of per-event weights (all ones when corrections are off)
        """
        n_events = len(events)
        if not self.applies_corrections(no_cuts, cut_override):
            return np.ones(n_events)

        w = self.branch_config.weighting
        pt_name, eta_name = self.branch_config.lepton_branches(is_electron)
        lep_pt = ak.to_numpy(events[pt_name]).astype(float)
        lep_eta = ak.to_numpy(events[eta_name]).astype(float)
        # fixed-length jet arrays; pad in case the collection is jagged
        jet_pt = ak.to_numpy(ak.fill_none(ak.pad_none(events[w["jet_pt"]], MAX_JETS, clip=True), 0.0))
        jet_eta = ak.to_numpy(ak.fill_none(ak.pad_none(events[w["jet_eta"]], MAX_JETS, clip=True), 0.0))
        met = ak.to_numpy(events[w["met"]]).astype(float)
        njets = ak.to_numpy(events[w["njets"]]).astype(int)

        weights = np.empty(n_events)
        for i in tqdm(range(n_events), **get_tqdm_kwargs("Event weights", leave=False)):
            weights[i] = self._event_weight(
                lep_pt[i], lep_eta[i], jet_pt[i], jet_eta[i], met[i], njets[i], is_electron
            )

        self.logger.debug(
            f"Computed {n_events} {'electron' if is_electron else 'muon'} weights, "
            f"mean {weights.mean() if n_events else 0.0:.4f}"
        )
        return weights
