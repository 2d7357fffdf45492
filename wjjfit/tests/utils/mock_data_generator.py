"""
Mock data generators for testing the fit utilities.

Provides utilities to create synthetic W+jets trees, efficiency tables and
fit configuration files for reproducible testing without real samples.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import uproot

from wjjfit.modules.efficiency_tables import EfficiencyProviders

N_JET_SLOTS = 6


def generate_wjets_events(
    n_events: int = 1000,
    seed: int = 42,
    signal_fraction: float = 0.3,
) -> Dict[str, np.ndarray]:
    """
    Generate mock reduced-tree W+jets events.

    The dijet mass is a W/Z-like peak near 85 on top of a falling
    background; jet slots beyond the event's jet count are zero.

    Args:
        n_events: Number of events to generate
        seed: Random seed for reproducibility
        signal_fraction: Fraction of events in the peak

    Returns:
        Dictionary mapping branch names to numpy arrays
    """
    rng = np.random.default_rng(seed)

    n_signal = int(n_events * signal_fraction)
    mass = np.concatenate(
        [
            rng.normal(85.0, 10.0, n_signal),
            20.0 + rng.exponential(60.0, n_events - n_signal),
        ]
    )
    rng.shuffle(mass)

    njets = rng.choice([2, 3, 4], size=n_events, p=[0.6, 0.3, 0.1]).astype(np.int32)

    jet_pt = np.sort(25.0 + rng.exponential(30.0, (n_events, N_JET_SLOTS)), axis=1)[:, ::-1]
    jet_eta = rng.uniform(-2.4, 2.4, (n_events, N_JET_SLOTS))
    empty_slot = np.arange(N_JET_SLOTS)[None, :] >= njets[:, None]
    jet_pt[empty_slot] = 0.0
    jet_eta[empty_slot] = 0.0

    return {
        "Mass2j_PFCor": mass,
        "evtNJ": njets,
        "JetPFCor_Pt": np.ascontiguousarray(jet_pt),
        "JetPFCor_Eta": jet_eta,
        "event_met_pfmet": 20.0 + rng.exponential(25.0, n_events),
        "event_nPV": rng.poisson(8, n_events).astype(np.int32),
        "W_mt": rng.uniform(30.0, 120.0, n_events),
        "W_electron_pt": 30.0 + rng.exponential(15.0, n_events),
        "W_electron_eta": rng.uniform(-2.5, 2.5, n_events),
        "W_muon_pt": 25.0 + rng.exponential(15.0, n_events),
        "W_muon_eta": rng.uniform(-2.1, 2.1, n_events),
    }


def create_mock_wjets_file(
    output_path: Union[str, Path],
    tree_name: str = "WJet",
    n_events: int = 1000,
    branches: Optional[List[str]] = None,
    seed: int = 42,
) -> Path:
    """
    Create a ROOT file with a mock W+jets tree.

    Args:
        output_path: Path where ROOT file will be created
        tree_name: Name of the TTree
        n_events: Number of events
        branches: Branch names to keep (all generated branches if None)
        seed: Random seed for reproducibility

    Returns:
        Path to created ROOT file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = generate_wjets_events(n_events, seed)
    if branches is not None:
        data = {name: data[name] for name in branches}

    with uproot.recreate(output_path) as file:
        file[tree_name] = data

    return output_path


def create_mock_efficiency_tables(
    output_dir: Union[str, Path],
    value: float = 0.9,
    overrides: Optional[Dict[str, float]] = None,
) -> Path:
    """
    Write every standard efficiency table with constant cells.

    Each table has two pT cells (20-40, 40-100) and two eta cells
    (-2.5-0, 0-2.5).

    Args:
        output_dir: Directory receiving the tables
        value: Efficiency written in every cell
        overrides: Per-provider values (e.g. {"jet_loose": 0.3}) replacing value

    Returns:
        Path to the table directory
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    overrides = overrides or {}
    for field, filename in EfficiencyProviders.TABLE_FILES.items():
        eff = overrides.get(field, value)
        lines = ["# x_lo x_hi y_lo y_hi eff err_up err_down"]
        for x_lo, x_hi in [(20.0, 40.0), (40.0, 100.0)]:
            for y_lo, y_hi in [(-2.5, 0.0), (0.0, 2.5)]:
                lines.append(f"{x_lo} {x_hi} {y_lo} {y_hi} {eff} 0.01 0.01")
        (output_dir / filename).write_text("\n".join(lines) + "\n")

    return output_dir


def create_mock_fit_config_toml(
    output_path: Union[str, Path],
    fit_config: Dict[str, Any],
    section: str = "fit",
) -> Path:
    """
    Write a fit configuration TOML file.

    Args:
        output_path: Path where TOML file will be created
        fit_config: Contents of the fit table
        section: Name of the table

    Returns:
        Path to created TOML file
    """
    import tomli_w

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "wb") as f:
        tomli_w.dump({section: fit_config}, f)

    return output_path
