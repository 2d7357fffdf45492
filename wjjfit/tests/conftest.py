"""
Global pytest fixtures and configuration for the test suite.

Provides reusable fixtures for testing the fit utilities without
duplicating setup code across test modules.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator

import awkward as ak
import numpy as np
import pytest

from wjjfit.modules.efficiency_tables import ConstantEfficiency, EfficiencyProviders
from wjjfit.modules.fit_params import FitParameters
from wjjfit.tests.utils.mock_data_generator import (
    create_mock_wjets_file,
    generate_wjets_events,
)


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test operations.

    Automatically cleaned up after test completion.

    Yields:
        Path to temporary directory
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix="wjjfit_test_"))
    try:
        yield tmp_dir
    finally:
        if tmp_dir.exists():
            shutil.rmtree(tmp_dir)


@pytest.fixture
def sample_fit_config_dict() -> Dict[str, Any]:
    """
    Provide a minimal valid [fit] configuration dictionary.

    Returns:
        Dictionary with fit parameters
    """
    return {
        "var": "Mass2j_PFCor",
        "min_mass": 40.0,
        "max_mass": 200.0,
        "nbins": 16,
        "njets": 2,
        "min_trunc": 65.0,
        "max_trunc": 95.0,
        "cuts": "",
        "int_lumi": 2100.0,
        "do_eff_corrections": True,
        "jes_scales": [0.02, -0.02],
        "tree_name": "WJet",
    }


@pytest.fixture
def fit_params() -> FitParameters:
    """Default fit parameters: [40, 200] in 16 bins, exactly two jets."""
    return FitParameters(min_mass=40.0, max_mass=200.0, nbins=16, njets=2)


@pytest.fixture
def unit_providers() -> EfficiencyProviders:
    """All efficiencies equal to one."""
    return EfficiencyProviders.constant(1.0)


@pytest.fixture
def jet_trigger_providers() -> EfficiencyProviders:
    """
    Lepton and MET efficiencies of one, jets with tight 0.6 and
    loose-only 0.3 efficiency.

    For two jets the jet leg efficiency is 0.93 with the "any" condition
    and 0.72 with the "pair" condition.
    """
    one = ConstantEfficiency(1.0)
    return EfficiencyProviders(
        ele_reco=one,
        ele_id=one,
        ele_trigger=one,
        mu_id=one,
        mu_trigger=one,
        jet_tight=ConstantEfficiency(0.6),
        jet_loose=ConstantEfficiency(0.3),
        met=one,
    )


@pytest.fixture
def mock_events() -> ak.Array:
    """
    Generate mock W+jets events in memory.

    Returns:
        Awkward record array with 500 events
    """
    return ak.Array(generate_wjets_events(n_events=500, seed=42))


@pytest.fixture
def mock_tree_file(tmp_test_dir: Path) -> Path:
    """
    Create a ROOT file with a mock WJet tree.

    Args:
        tmp_test_dir: Temporary test directory fixture

    Returns:
        Path to the ROOT file
    """
    return create_mock_wjets_file(tmp_test_dir / "mock_wjets.root", n_events=500, seed=42)


@pytest.fixture
def uniform_edges() -> np.ndarray:
    """Ten bins of width 10 over [0, 100]."""
    return np.linspace(0.0, 100.0, 11)


def pytest_configure(config: pytest.Config) -> None:
    """
    Configure pytest with custom markers and settings.

    Args:
        config: pytest configuration object
    """
    config.addinivalue_line(
        "markers", "requires_tomli_w: Test requires tomli_w for writing TOML files"
    )
