import numpy as np
import pandas as pd
import pytest

from ordbetareg.fit import OrdBetaRegFit, build_designs, ordbetareg


class TestOrdBetaRegFit:
    def test_dimensions(self, fake_fit) -> None:
        assert fake_fit.num_chains == 2
        assert fake_fit.num_draws == 100
        assert fake_fit.draws("mu_p0_beta").shape == (100, 2)
        assert "responses=['y']" in repr(fake_fit)

    def test_response_info(self, fake_fit) -> None:
        assert fake_fit.response_info().name == "y"
        assert fake_fit.response_info("y").upper == 100.0

        with pytest.raises(ValueError, match="Unknown response"):
            fake_fit.response_info("w")

    def test_unknown_draws(self, fake_fit) -> None:
        with pytest.raises(KeyError):
            fake_fit.draws("sigma")

    def test_linear_predictor(self, fake_fit, sim_data) -> None:
        eta = fake_fit.linear_predictor()
        assert eta.shape == (100, len(sim_data))

        row = sim_data.iloc[0]
        g = "abc".index(row["g"])
        cumulative = np.array([0.0, 0.5, 0.8, 1.0])

        d = fake_fit.draws
        expected = (
            d("mu_intercept")
            + d("mu_p0_beta") @ np.array([row["x"], row["d"]])
            + d("mu_re_g_sd") * d("mu_re_g_z")[:, g]
            + d("mu_mo_edu_b") * 3 * cumulative[row["edu"] - 1]
        )
        assert np.allclose(eta[:, 0], expected, atol=1e-5)

    def test_linear_predictor_newdata(self, fake_fit, sim_data) -> None:
        eta = fake_fit.linear_predictor(sim_data.iloc[:5])
        assert np.allclose(eta, fake_fit.linear_predictor()[:, :5])

    def test_unseen_group_is_population_level(self, fake_fit, sim_data) -> None:
        newdata = sim_data.iloc[:1].assign(g="z")
        known = sim_data.iloc[:1]

        eta_new = fake_fit.linear_predictor(newdata)
        eta_known = fake_fit.linear_predictor(known)

        g = "abc".index(known["g"].iloc[0])
        d = fake_fit.draws
        effect = d("mu_re_g_sd") * d("mu_re_g_z")[:, g]
        assert np.allclose(eta_known[:, 0] - eta_new[:, 0], effect, atol=1e-5)

    def test_predict(self, fake_fit) -> None:
        response = fake_fit.predict()
        mean = fake_fit.predict(kind="mean")
        probs = fake_fit.predict(kind="probs")

        assert np.all((response >= 0.0) & (response <= 100.0))
        assert np.allclose(response, 100.0 * mean)
        assert probs.shape == (len(response), 3)
        assert np.allclose(probs.sum(axis=-1), 1.0)

    def test_predict_kind(self, fake_fit) -> None:
        with pytest.raises(ValueError, match="Unknown kind"):
            fake_fit.predict(kind="link")

    def test_posterior_predict(self, fake_fit) -> None:
        draws = fake_fit.posterior_predict(ndraws=10, seed=1)
        unit = fake_fit.posterior_predict(ndraws=10, seed=1, scale="unit")

        assert draws.shape == (10, fake_fit.response_info().design.nobs)
        assert np.all((draws >= 0.0) & (draws <= 100.0))
        assert np.allclose(draws, 100.0 * unit)
        assert np.any(unit == 0.0) and np.any(unit == 1.0)

    def test_posterior_predict_ndraws(self, fake_fit) -> None:
        with pytest.raises(ValueError, match="ndraws"):
            fake_fit.posterior_predict(ndraws=1000)

    def test_posterior_predict_matches_predict(self, fake_fit) -> None:
        draws = fake_fit.posterior_predict(seed=2)
        assert draws.mean() == pytest.approx(fake_fit.predict().mean(), rel=0.05)

    def test_coefficient_names(self, fake_fit) -> None:
        assert fake_fit.coefficient_names() == {
            "mu_intercept": "mu_Intercept",
            "mu_p0_beta[0]": "mu_x",
            "mu_p0_beta[1]": "mu_d",
        }

    def test_summary(self, fake_fit) -> None:
        summary = fake_fit.summary()

        assert isinstance(summary, pd.DataFrame)
        assert "mean" in summary.columns
        assert "mu_x" in summary.index
        assert "phi" in summary.index
        assert not any("transformed" in label for label in summary.index)

        raw = fake_fit.summary(rename=False)
        assert "mu_p0_beta[0]" in raw.index

    def test_marginal_effects(self, fake_fit) -> None:
        ame = fake_fit.marginal_effects(["x"])
        assert list(ame["variable"]) == ["x"]


class TestOrdBetaRegValidation:
    def test_init(self, sim_data) -> None:
        with pytest.raises(ValueError, match="init"):
            ordbetareg("y ~ x", sim_data, init="uniform")

    def test_data_type(self, sim_data) -> None:
        with pytest.raises(TypeError, match="DataFrame"):
            ordbetareg("y ~ x", [sim_data, sim_data.to_dict()])

    def test_num_chains(self, sim_data) -> None:
        with pytest.raises(ValueError, match="num_chains"):
            ordbetareg("y ~ x", sim_data, num_chains=0)

    def test_empty_formula_list(self, sim_data) -> None:
        with pytest.raises(ValueError, match="formula"):
            ordbetareg([], sim_data)

    def test_imputed_designs_share_levels(self, sim_data) -> None:
        other = sim_data.loc[sim_data["g"] != "a"]
        first, second = build_designs(["y ~ x + (1 | g)"], [sim_data, other], [None])

        group = second[0].mu.groups[0]
        assert group.n_levels == first[0].mu.groups[0].n_levels == 3
        assert list(group.levels[group.index]) == list(other["g"])

    def test_imputed_data_with_unknown_level(self, sim_data) -> None:
        other = sim_data.assign(g=sim_data["g"].replace("a", "z"))

        with pytest.raises(ValueError, match="Unknown levels"):
            ordbetareg("y ~ x + (1 | g)", [sim_data, other], true_bounds=(0, 100))


@pytest.mark.mcmc
class TestOrdBetaRegMCMC:
    def test_recovers_coefficients(self, sim_data, mcmc_seed) -> None:
        fit = ordbetareg(
            "y ~ x + d",
            sim_data,
            true_bounds=(0, 100),
            num_chains=2,
            warmup=500,
            posterior=500,
            seed=mcmc_seed,
            show_progress=False,
        )

        assert isinstance(fit, OrdBetaRegFit)
        assert fit.samples["mu_p0_beta"].shape == (2, 500, 2)

        beta = fit.draws("mu_p0_beta").mean(axis=0)
        assert np.allclose(beta, [0.8, -0.5], atol=0.3)

        cutpoints = fit.draws("cutpoints").mean(axis=0)
        assert np.allclose(cutpoints, [-2.0, 2.0], atol=0.7)

        assert 2.0 < fit.draws("phi").mean() < 8.0

    def test_multiple_imputation(self, sim_data, mcmc_seed) -> None:
        other = sim_data.assign(x=sim_data["x"] + 0.01)
        fit = ordbetareg(
            "y ~ x",
            [sim_data, other],
            true_bounds=(0, 100),
            num_chains=2,
            warmup=200,
            posterior=100,
            seed=mcmc_seed,
            show_progress=False,
        )

        assert len(fit.models) == 2
        assert fit.num_chains == 4
        assert fit.samples["cutpoints"].shape == (4, 100, 2)

    def test_full_model(self, sim_data, mcmc_seed) -> None:
        fit = ordbetareg(
            "y ~ x + (1 | g) + mo(edu)",
            sim_data,
            true_bounds=(0, 100),
            phi_formula="~ d",
            num_chains=2,
            warmup=300,
            posterior=200,
            seed=mcmc_seed,
            init="random",
            show_progress=False,
        )

        assert fit.samples["mu_re_g_sd"].shape == (2, 200)
        assert fit.samples["mu_mo_edu_zeta"].shape == (2, 200, 3)
        assert np.all(np.diff(fit.samples["cutpoints"], axis=-1) > 0.0)
        assert np.all(np.isfinite(fit.predict(kind="mean")))

    def test_multivariate(self, sim_data, mcmc_seed) -> None:
        data = sim_data.assign(w=100.0 - sim_data["y"])
        fit = ordbetareg(
            ["y ~ x", "w ~ x"],
            data,
            true_bounds={"y": (0, 100), "w": (0, 100)},
            num_chains=1,
            warmup=200,
            posterior=100,
            seed=mcmc_seed,
            show_progress=False,
        )

        assert set(fit.responses) == {"y", "w"}
        assert "w_mu_p0_beta" in fit.samples

        beta_y = fit.draws("y_mu_p0_beta").mean()
        beta_w = fit.draws("w_mu_p0_beta").mean()
        assert beta_y > 0.0 > beta_w

        with pytest.raises(ValueError, match="several responses"):
            fit.predict()
