"""
Integration tests for the template pipeline.

Runs mock ROOT trees through selection, weighting, histogramming, density
models and the goodness-of-fit evaluation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import numpy as np
import pytest

from wjjfit.modules.density_models import DensityModelBuilder
from wjjfit.modules.efficiency_tables import EfficiencyProviders
from wjjfit.modules.event_source import TreeEventSource
from wjjfit.modules.event_weights import EventWeightComputer
from wjjfit.modules.fit_params import FitParameters
from wjjfit.modules.goodness_of_fit import GoodnessOfFitEvaluator
from wjjfit.modules.histograms import (
    BinnedDistributionBuilder,
    UnbinnedSampleBuilder,
    write_random_tree,
)
from wjjfit.tests.utils import (
    assert_distributions_equal,
    assert_file_exists,
    assert_value_in_range,
    create_mock_efficiency_tables,
    create_mock_fit_config_toml,
    create_mock_wjets_file,
)


@pytest.fixture
def corrected_params(tmp_test_dir: Path) -> FitParameters:
    """Electron fit with efficiency tables on disk (jets: tight 0.6, loose-only 0.3)."""
    eff_dir = create_mock_efficiency_tables(
        tmp_test_dir / "EffTableDir", value=0.9, overrides={"jet_tight": 0.6, "jet_loose": 0.3}
    )
    return FitParameters(
        min_mass=40.0,
        max_mass=200.0,
        nbins=16,
        njets=2,
        int_lumi=2100.0,
        do_eff_corrections=True,
        jes_scales=(0.1, -0.1),
        eff_dir=str(eff_dir),
    )


@pytest.mark.integration
class TestHistogramsFromFiles:
    """Test histogram building from ROOT files."""

    def test_file_and_memory_paths_agree(
        self, fit_params: FitParameters, mock_tree_file: Path
    ) -> None:
        """Cutting while reading equals cutting in memory."""
        builder = BinnedDistributionBuilder(fit_params)
        events = TreeEventSource(mock_tree_file).read(["Mass2j_PFCor", "evtNJ"])

        from_file = builder.from_file(mock_tree_file, name="mjj")
        from_memory = builder.from_events(events, name="mjj")

        assert from_file is not None
        assert from_file.total() > 0
        assert_distributions_equal(from_file, from_memory)

    def test_weighted_template(self, corrected_params: FitParameters, mock_tree_file: Path) -> None:
        """Efficiency weights lower the template below the raw count."""
        providers = EfficiencyProviders.from_directory(corrected_params.eff_dir)
        weights = EventWeightComputer(corrected_params, providers, seed=987654321)
        weighted_builder = BinnedDistributionBuilder(corrected_params, weight_computer=weights)
        raw_builder = BinnedDistributionBuilder(corrected_params)

        weighted = weighted_builder.from_file(mock_tree_file, is_electron=True)
        raw = raw_builder.from_file(mock_tree_file, is_electron=True)

        assert weighted is not None and raw is not None
        assert weighted.entries == raw.entries
        assert 0.0 < weighted.total() < raw.total()
        assert np.all(weighted.sumw <= raw.sumw + 1e-12)

    def test_jet_categories(self, fit_params: FitParameters, mock_tree_file: Path) -> None:
        """The inclusive category is the sum of the 2- and 3-jet categories."""
        totals = {}
        for njets in (0, 2, 3):
            builder = BinnedDistributionBuilder(fit_params.with_njets(njets))
            totals[njets] = builder.from_file(mock_tree_file).total()

        assert totals[0] == pytest.approx(totals[2] + totals[3])
        assert totals[2] > totals[3] > 0

    def test_jes_shift_only_moves_events(
        self, corrected_params: FitParameters, mock_tree_file: Path
    ) -> None:
        """A JES shift can only push selected events out of the range."""
        builder = BinnedDistributionBuilder(corrected_params)

        nominal = builder.from_file(mock_tree_file)
        up = builder.from_file(mock_tree_file, jes_index=0)

        assert up.entries <= nominal.entries
        assert not np.array_equal(up.sumw, nominal.sumw)

    def test_missing_tree_is_skipped(self, mock_tree_file: Path) -> None:
        """Requests for a tree the file lacks return None."""
        params = FitParameters(tree_name="WJet_jesUp")

        assert BinnedDistributionBuilder(params).from_file(mock_tree_file) is None
        assert UnbinnedSampleBuilder(params).from_file(mock_tree_file) is None

    def test_unbinned_matches_binned_entries(
        self, fit_params: FitParameters, mock_tree_file: Path
    ) -> None:
        """Unbinned and unweighted binned paths select the same events."""
        values = UnbinnedSampleBuilder(fit_params).from_file(mock_tree_file)
        dist = BinnedDistributionBuilder(fit_params).from_file(mock_tree_file)

        assert len(values) == dist.entries
        assert np.all((values > 40.0) & (values < 200.0))

    def test_truncated_sample_skips_blinded_window(self, mock_tree_file: Path) -> None:
        """Reading with truncated=True drops every event in [min_trunc, max_trunc]."""
        params = FitParameters(
            min_mass=40.0, max_mass=200.0, nbins=16, njets=2, min_trunc=65.0, max_trunc=95.0
        )
        builder = UnbinnedSampleBuilder(params)

        full = builder.from_file(mock_tree_file)
        blinded = builder.from_file(mock_tree_file, truncated=True)

        assert np.any((full >= 65.0) & (full <= 95.0))
        assert 0 < len(blinded) < len(full)
        assert not np.any((blinded >= 65.0) & (blinded <= 95.0))
        assert np.all((blinded > 40.0) & (blinded < 200.0))


@pytest.mark.integration
class TestTemplateFit:
    """Test models and goodness of fit on file-based templates."""

    def test_template_against_its_own_data(
        self, fit_params: FitParameters, mock_tree_file: Path
    ) -> None:
        """A template compared with the sample it came from gives zero."""
        dist = BinnedDistributionBuilder(fit_params).from_file(mock_tree_file, name="WpJ")
        builder = DensityModelBuilder()
        template = builder.build(dist, "WpJ")
        model = builder.composite("total", [template], [1.0])

        result = GoodnessOfFitEvaluator().evaluate(dist, model)

        assert result.chi2 == pytest.approx(0.0, abs=1e-9)
        assert result.nbins == int(np.count_nonzero(dist.sumw))

    def test_independent_sample(self, fit_params: FitParameters, tmp_test_dir: Path) -> None:
        """A statistically independent sample gives a sensible chi-square."""
        template_file = create_mock_wjets_file(tmp_test_dir / "mc.root", n_events=5000, seed=1)
        data_file = create_mock_wjets_file(tmp_test_dir / "data.root", n_events=1000, seed=2)
        builder = BinnedDistributionBuilder(fit_params)
        models = DensityModelBuilder()

        template = builder.from_file(template_file, name="mc", bin_mult=2.0)
        data = builder.from_file(data_file, name="data")
        model = models.composite("total", [models.build(template, "mc")], norm=data.total())
        result = GoodnessOfFitEvaluator().evaluate(data, model)

        assert 0 < result.nbins <= 16
        assert result.chi2 == pytest.approx(np.sum(result.pulls**2))
        assert_value_in_range(result.p_value(), 1e-6, 1.0)
        assert len(result.to_dataframe()) == result.nbins

    def test_toy_tree_round_trip(
        self, fit_params: FitParameters, mock_tree_file: Path, tmp_test_dir: Path
    ) -> None:
        """A toy tree drawn from a histogram reads back like a sample."""
        dist = BinnedDistributionBuilder(fit_params).from_file(mock_tree_file)
        toy_path = write_random_tree(
            dist, tmp_test_dir / "toys" / "toy.root", fit_params, np.random.default_rng(4)
        )

        assert_file_exists(toy_path)
        values = UnbinnedSampleBuilder(fit_params).from_file(toy_path, no_cuts=True)

        assert len(values) == dist.entries
        assert np.all((values >= 40.0) & (values < 200.0))


@pytest.mark.integration
@pytest.mark.requires_tomli_w
class TestConfiguredPipeline:
    """Test the pipeline driven by a TOML configuration."""

    def test_from_toml(
        self,
        tmp_test_dir: Path,
        sample_fit_config_dict: Dict[str, Any],
        mock_tree_file: Path,
    ) -> None:
        """Parameters from TOML drive blinded and full selections."""
        config_file = create_mock_fit_config_toml(tmp_test_dir / "fit.toml", sample_fit_config_dict)
        params = FitParameters.from_toml(config_file)
        samples = UnbinnedSampleBuilder(params)

        full = samples.from_file(mock_tree_file)
        blinded = samples.from_file(mock_tree_file, truncated=True)

        assert len(blinded) < len(full)
        assert not np.any((blinded > 65.0) & (blinded < 95.0))
