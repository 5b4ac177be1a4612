"""Tests for the per-fold Gaussian copula sampler."""
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from copulacast.errors import SamplingFailure
from copulacast.scenarios.copula import sample_copula
from copulacast.scenarios.marginals import LocationControl
from copulacast.scenarios.sampler import check_psd, derive_fold_seed, draw_fold


# ── Seeds ────────────────────────────────────────────────────────────────

class TestFoldSeeds:

    def test_deterministic(self):
        a = np.random.default_rng(derive_fold_seed(7, "f1")).random(3)
        b = np.random.default_rng(derive_fold_seed(7, "f1")).random(3)
        np.testing.assert_array_equal(a, b)

    def test_folds_get_different_streams(self):
        a = np.random.default_rng(derive_fold_seed(7, 1)).random(3)
        b = np.random.default_rng(derive_fold_seed(7, 2)).random(3)
        assert not np.allclose(a, b)

    def test_labels_equal_as_text_get_different_streams(self):
        a = np.random.default_rng(derive_fold_seed(7, 1)).random(3)
        b = np.random.default_rng(derive_fold_seed(7, "1")).random(3)
        assert not np.allclose(a, b)

    def test_no_base_seed(self):
        assert derive_fold_seed(None, 1) is None


class TestCheckPSD:

    def test_negative_eigenvalue(self):
        with pytest.raises(SamplingFailure):
            check_psd(np.array([[1.0, 2.0], [2.0, 1.0]]), fold=1)

    def test_asymmetric(self):
        with pytest.raises(SamplingFailure):
            check_psd(np.array([[1.0, 0.5], [0.1, 1.0]]))

    def test_singular_psd_accepted(self):
        cov = check_psd(np.ones((2, 2)))
        assert cov.shape == (2, 2)


# ── Single fold draws ────────────────────────────────────────────────────

class TestDrawFold:

    def test_block_shapes_spatial(self):
        keys = pd.DataFrame({"issue_ind": [0, 0, 1], "horiz_ind": [1, 2, 1]})
        out = draw_fold("spatial", 1, keys, np.zeros(2), np.eye(2), 25, ["a", "b"],
                        seed=derive_fold_seed(1, 1))
        assert set(out) == {"a", "b"}
        for block in out.values():
            assert block.shape == (3, 2 + 25)
            values = block[list(range(1, 26))].to_numpy()
            assert np.all((values > 0) & (values < 1))

    def test_block_shapes_temporal(self):
        keys = pd.DataFrame({"issue_ind": [5, 6]})
        out = draw_fold("temporal", 1, keys, np.zeros(6), np.eye(6), 10, ["a", "b"],
                        horizons=np.array([1, 2, 3]))
        assert out["a"].shape == (6, 12)
        assert out["b"]["horiz_ind"].tolist() == [1, 2, 3, 1, 2, 3]
        assert out["b"]["issue_ind"].tolist() == [5, 5, 5, 6, 6, 6]

    def test_same_seed_same_draws(self):
        keys = pd.DataFrame({"issue_ind": [0], "horiz_ind": [1]})
        args = ("spatial", "x", keys, np.zeros(1), np.eye(1), 50, ["a"])
        a = draw_fold(*args, seed=derive_fold_seed(3, "x"))["a"]
        b = draw_fold(*args, seed=derive_fold_seed(3, "x"))["a"]
        pd.testing.assert_frame_equal(a, b)

    def test_not_psd_raises(self):
        keys = pd.DataFrame({"issue_ind": [0], "horiz_ind": [1]})
        with pytest.raises(SamplingFailure):
            draw_fold("spatial", 1, keys, np.zeros(2), np.array([[1.0, 3.0], [3.0, 1.0]]), 5, ["a", "b"])

    def test_independent_across_folds(self):
        keys = pd.DataFrame({"issue_ind": np.arange(10), "horiz_ind": np.ones(10, dtype=int)})
        draws = [
            draw_fold("spatial", f, keys, np.zeros(1), np.eye(1), 1000, ["a"],
                      seed=derive_fold_seed(11, f), return_gaussian=True)["a"]
            for f in (1, 2)
        ]
        x, y = (d[list(range(1, 1001))].to_numpy().ravel() for d in draws)
        assert abs(np.corrcoef(x, y)[0, 1]) < 0.05


# ── Copula sampling through the public entry point ───────────────────────

class TestCopulaSampling:

    def test_spatial_identity_two_locations(self):
        issues = [0, 1, 2]
        ctrl = LocationControl(kfold=[1, 1, 1], issue_ind=issues, horiz_ind=[1, 1, 1])
        control = {"a": ctrl, "b": ctrl}
        sigma = {1: np.eye(2)}
        mean = {1: np.zeros(2)}

        gauss = sample_copula("spatial", 1000, control, sigma, mean, seed=2024, gaussian=True)
        assert abs(gauss["a"].to_numpy().mean()) < 0.1
        assert abs(gauss["b"].to_numpy().mean()) < 0.1

        unif = sample_copula("spatial", 1000, control, sigma, mean, seed=2024)
        r = np.corrcoef(unif["a"].to_numpy().ravel(), unif["b"].to_numpy().ravel())[0, 1]
        assert abs(r) < 0.05

    def test_temporal_correlation_between_lead_times(self):
        ctrl = LocationControl(kfold=[1, 1], issue_ind=[0, 0], horiz_ind=[1, 2])
        sigma = {1: np.array([[1.0, 0.8], [0.8, 1.0]])}
        mean = {1: np.zeros(2)}
        out = sample_copula("temporal", 10_000, {"a": ctrl}, sigma, mean, seed=5, gaussian=True)["a"]
        assert out.shape == (2, 10_000)
        r = np.corrcoef(out.iloc[0], out.iloc[1])[0, 1]
        assert r == pytest.approx(0.8, abs=0.05)

    def test_spatio_temporal_components_land_on_their_labels(self):
        ctrl = LocationControl(kfold=[1, 1], issue_ind=[0, 0], horiz_ind=[1, 2])
        # components: a_h1, a_h2, b_h1, b_h2; only a_h2 and b_h1 are correlated
        cov = np.eye(4)
        cov[1, 2] = cov[2, 1] = 0.9
        out = sample_copula("temporal", 5000, {"a": ctrl, "b": ctrl}, {1: cov},
                            {1: np.zeros(4)}, seed=17, gaussian=True)
        a_h1, a_h2 = out["a"].iloc[0], out["a"].iloc[1]
        b_h1, b_h2 = out["b"].iloc[0], out["b"].iloc[1]
        assert np.corrcoef(a_h2, b_h1)[0, 1] == pytest.approx(0.9, abs=0.05)
        assert abs(np.corrcoef(a_h1, b_h1)[0, 1]) < 0.05
        assert abs(np.corrcoef(a_h2, b_h2)[0, 1]) < 0.05

    def test_reproducible_regardless_of_workers(self, two_fold_frame, identity_cov):
        control = {"a": LocationControl.from_frame(two_fold_frame)}
        sigma, mean = identity_cov(3)
        serial = sample_copula("temporal", 20, control, sigma, mean, seed=9, n_jobs=1)
        threaded = sample_copula("temporal", 20, control, sigma, mean, seed=9, n_jobs=2)
        pd.testing.assert_frame_equal(serial["a"], threaded["a"])
