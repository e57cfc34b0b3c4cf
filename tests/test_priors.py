import pytest

from ordbetareg.priors import OrdBetaPriors


class TestOrdBetaPriors:
    def test_defaults(self) -> None:
        priors = OrdBetaPriors()

        assert priors.coef("mu") == (0.0, 5.0)
        assert priors.coef("phi") == (0.0, 5.0)
        assert priors.phi_prior == 0.1
        assert priors.dirichlet_prior == (1.0, 1.0, 1.0)

    def test_default_intercept(self) -> None:
        family, params = OrdBetaPriors().intercept("mu")

        assert family == "student_t"
        assert params == {"df": 3.0, "loc": 0.0, "scale": 2.5}

    def test_normal_intercept(self) -> None:
        priors = OrdBetaPriors(phi_intercept_prior_mean=1.0, phi_intercept_prior_sd=2.0)

        assert priors.intercept("phi") == ("normal", {"loc": 1.0, "scale": 2.0})
        assert priors.intercept("mu")[0] == "student_t"

    def test_dirichlet_prior_is_normalized(self) -> None:
        priors = OrdBetaPriors(dirichlet_prior=[2, 1, 2])
        assert priors.dirichlet_prior == (2.0, 1.0, 2.0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"coef_prior_sd": 0.0},
            {"phi_prior": -1.0},
            {"group_sd_prior_scale": 0.0},
            {"mo_dirichlet_prior": 0.0},
            {"intercept_prior_mean": 0.0, "intercept_prior_sd": -1.0},
            {"dirichlet_prior": (1.0, 0.0, 1.0)},
            {"dirichlet_prior": (1.0, 1.0)},
        ],
    )
    def test_invalid(self, kwargs) -> None:
        with pytest.raises(ValueError):
            OrdBetaPriors(**kwargs)

    def test_mean_and_sd_together(self) -> None:
        with pytest.raises(ValueError, match="set together"):
            OrdBetaPriors(intercept_prior_mean=0.0)

    def test_unknown_predictor(self) -> None:
        with pytest.raises(ValueError, match="Unknown predictor"):
            OrdBetaPriors().coef("sigma")

    def test_to_dict(self) -> None:
        d = OrdBetaPriors().to_dict()

        assert d["coef_prior_sd"] == 5.0
        assert "default_intercept" not in d
