"""
Default priors of the ordered beta regression model.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields

import numpy as np


@dataclass
class OrdBetaPriors:
    """
    Prior hyperparameters of the ordered beta regression model.

    The defaults follow the weakly informative priors of the ``ordbetareg`` R
    package: normal priors with standard deviation 5 on the regression
    coefficients, an exponential prior with rate 0.1 on a constant dispersion, and a
    flat induced Dirichlet prior on the cutpoints.

    If the intercept prior mean and standard deviation are not set, the intercept
    gets a Student-t prior with 3 degrees of freedom, location 0 and scale 2.5.
    """

    coef_prior_mean: float = 0.0
    """Mean of the normal prior of the mu coefficients."""

    coef_prior_sd: float = 5.0
    """Standard deviation of the normal prior of the mu coefficients."""

    intercept_prior_mean: float | None = None
    """Mean of the normal prior of the mu intercept."""

    intercept_prior_sd: float | None = None
    """Standard deviation of the normal prior of the mu intercept."""

    phi_prior: float = 0.1
    """Rate of the exponential prior of a constant dispersion parameter."""

    dirichlet_prior: tuple[float, float, float] = (1.0, 1.0, 1.0)
    """Concentration of the induced Dirichlet prior of the cutpoints."""

    phi_coef_prior_mean: float = 0.0
    """Mean of the normal prior of the phi coefficients."""

    phi_coef_prior_sd: float = 5.0
    """Standard deviation of the normal prior of the phi coefficients."""

    phi_intercept_prior_mean: float | None = None
    """Mean of the normal prior of the phi intercept."""

    phi_intercept_prior_sd: float | None = None
    """Standard deviation of the normal prior of the phi intercept."""

    group_sd_prior_df: float = 3.0
    """Degrees of freedom of the half Student-t prior of group standard deviations."""

    group_sd_prior_scale: float = 2.5
    """Scale of the half Student-t prior of group standard deviations."""

    mo_dirichlet_prior: float = 1.0
    """Concentration of the Dirichlet prior of monotonic effect simplexes."""

    default_intercept: dict[str, float] = field(
        default_factory=lambda: {"df": 3.0, "loc": 0.0, "scale": 2.5}, repr=False
    )
    """Student-t parameters for intercepts without a user-supplied prior."""

    def __post_init__(self) -> None:
        positive = [
            "coef_prior_sd",
            "phi_prior",
            "phi_coef_prior_sd",
            "group_sd_prior_df",
            "group_sd_prior_scale",
            "mo_dirichlet_prior",
        ]

        for name in positive:
            value = getattr(self, name)
            if not value > 0:
                raise ValueError(f"`{name}` must be positive, got {value}.")

        for name in ["intercept_prior_sd", "phi_intercept_prior_sd"]:
            value = getattr(self, name)
            if value is not None and not value > 0:
                raise ValueError(f"`{name}` must be positive, got {value}.")

        self._check_pair("intercept_prior_mean", "intercept_prior_sd")
        self._check_pair("phi_intercept_prior_mean", "phi_intercept_prior_sd")

        dirichlet = np.asarray(self.dirichlet_prior, dtype=np.float64)
        if dirichlet.shape != (3,) or np.any(dirichlet <= 0):
            raise ValueError(
                "`dirichlet_prior` must be three positive concentration values, got "
                f"{self.dirichlet_prior}."
            )
        self.dirichlet_prior = tuple(float(a) for a in dirichlet)  # type: ignore

    def _check_pair(self, mean: str, sd: str) -> None:
        if (getattr(self, mean) is None) != (getattr(self, sd) is None):
            raise ValueError(f"`{mean}` and `{sd}` must be set together.")

    def intercept(self, predictor: str) -> tuple[str, dict[str, float]]:
        """
        Returns the family (``"normal"`` or ``"student_t"``) and the parameters of the
        intercept prior for the predictor ``"mu"`` or ``"phi"``.
        """
        if predictor == "mu":
            mean, sd = self.intercept_prior_mean, self.intercept_prior_sd
        elif predictor == "phi":
            mean, sd = self.phi_intercept_prior_mean, self.phi_intercept_prior_sd
        else:
            raise ValueError(f"Unknown predictor {predictor!r}.")

        if mean is None:
            return "student_t", dict(self.default_intercept)

        return "normal", {"loc": float(mean), "scale": float(sd)}  # type: ignore

    def coef(self, predictor: str) -> tuple[float, float]:
        """Mean and standard deviation of the coefficient prior of a predictor."""
        if predictor == "mu":
            return self.coef_prior_mean, self.coef_prior_sd
        if predictor == "phi":
            return self.phi_coef_prior_mean, self.phi_coef_prior_sd
        raise ValueError(f"Unknown predictor {predictor!r}.")

    def to_dict(self) -> dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.repr}
