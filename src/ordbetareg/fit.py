"""
Fitting ordered beta regression models with Liesel's MCMC engine.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import arviz as az
import jax
import liesel.goose as gs
import numpy as np
import pandas as pd
from liesel.model import Model

from .data import BoundedOutcome, normalize
from .design import ModelDesign, PredictorDesign, parse_formula
from .distributions.ordered_beta import _draw
from .effects import average_marginal_effects, category_probs, expected_value
from .model import build_model, parameter_names
from .priors import OrdBetaPriors

Array = Any
Bounds = tuple[float, float]

logger = logging.getLogger(__name__)

_PREDICT_KINDS = ("response", "mean", "probs")


@dataclass
class ResponseInfo:
    """The design, outcome and data of one response of a fitted model."""

    name: str
    prefix: str
    design: ModelDesign
    outcome: BoundedOutcome
    data: pd.DataFrame
    """The complete rows of the (first) data set."""

    @property
    def lower(self) -> float:
        return self.outcome.lower

    @property
    def upper(self) -> float:
        return self.outcome.upper


def _term_keys(prefix: str, predictor: str) -> dict[str, str]:
    p = prefix + predictor
    return {"intercept": p + "_intercept", "beta": p + "_p0_beta"}


def _tracked_positions(info: ResponseInfo) -> list[str]:
    """Constrained parameters that are not sampled directly."""
    p = info.prefix
    keys = [p + "cutpoints"]

    if info.design.phi is None:
        keys.append(p + "phi")

    for group in info.design.mu.groups:
        keys.append(f"{p}mu_re_{group.name}_sd")

    for term in info.design.mu.monotonic:
        if term.n_levels > 2:
            keys.append(f"{p}mu_mo_{term.name}_zeta")

    return keys


def _jitter(key, value):
    return value + jax.random.uniform(key, value.shape, minval=-2.0, maxval=2.0)


def _flatten_draws(value: np.ndarray) -> np.ndarray:
    """Merges the chain and draw dimensions."""
    return value.reshape((-1,) + value.shape[2:])


def _pool(samples: list[dict[str, np.ndarray]]) -> dict[str, np.ndarray]:
    return {
        key: np.concatenate([s[key] for s in samples], axis=0) for key in samples[0]
    }


def _count_errors(results: gs.SamplingResults) -> tuple[int, int]:
    divergent = 0
    treedepth = 0

    for info in results.get_posterior_transition_infos().values():
        error_code = np.asarray(info.error_code)
        divergent += int(np.sum(error_code & 1))
        treedepth += int(np.sum((error_code & 2) > 0))

    return divergent, treedepth


def _resolve_per_response(value: Any, responses: list[str], what: str) -> list[Any]:
    if isinstance(value, dict):
        unknown = set(value) - set(responses)
        if unknown:
            raise ValueError(f"`{what}` refers to unknown responses: {unknown}.")
        return [value.get(name) for name in responses]

    return [value] * len(responses)


@dataclass
class OrdBetaRegFit:
    """
    A fitted ordered beta regression model.

    Use :func:`.ordbetareg` to fit a model. Posterior draws are stored in
    :attr:`.samples` with the chains in the first and the draws in the second
    dimension.
    """

    models: list[Model]
    """The Liesel models, one per data set."""

    results: list[gs.SamplingResults]
    """The sampling results, one per data set."""

    samples: dict[str, np.ndarray]
    """The posterior samples, pooled across data sets along the chain dimension."""

    responses: dict[str, ResponseInfo]
    priors: OrdBetaPriors
    seed: int
    info: dict[str, Any] = field(default_factory=dict)

    @property
    def model(self) -> Model:
        """The Liesel model of the first data set."""
        return self.models[0]

    @property
    def num_chains(self) -> int:
        return next(iter(self.samples.values())).shape[0]

    @property
    def num_draws(self) -> int:
        """The number of pooled draws."""
        value = next(iter(self.samples.values()))
        return value.shape[0] * value.shape[1]

    def response_info(self, response: str | None = None) -> ResponseInfo:
        """
        Returns the information on a response. The ``response`` argument is only
        required for multivariate models.
        """
        if response is None:
            if len(self.responses) > 1:
                raise ValueError(
                    "The model has several responses, choose one of "
                    f"{list(self.responses)}."
                )
            return next(iter(self.responses.values()))

        try:
            return self.responses[response]
        except KeyError:
            raise ValueError(
                f"Unknown response {response!r}, choose one of {list(self.responses)}."
            ) from None

    def draws(self, key: str) -> np.ndarray:
        """The pooled posterior draws of a position key as a float64 array."""
        if key not in self.samples:
            raise KeyError(f"No posterior samples for {key!r}.")
        return _flatten_draws(np.asarray(self.samples[key], dtype=np.float64))

    def _predictor(self, prefix: str, predictor: str, design: PredictorDesign):
        keys = _term_keys(prefix, predictor)
        eta = np.zeros((self.num_draws, design.nobs))

        if design.has_intercept:
            eta += self.draws(keys["intercept"])[:, None]

        if design.columns:
            eta += self.draws(keys["beta"]) @ design.X.T

        for group in design.groups:
            name = f"{prefix}{predictor}_re_{group.name}"
            sd = self.draws(name + "_sd")
            z = self.draws(name + "_z")

            effect = sd[:, None] * z[:, np.maximum(group.index, 0)]
            eta += np.where(group.index >= 0, effect, 0.0)

        for term in design.monotonic:
            name = f"{prefix}{predictor}_mo_{term.name}"
            b = self.draws(name + "_b")

            if term.n_levels > 2:
                zeta = self.draws(name + "_zeta")
            else:
                zeta = np.ones((self.num_draws, 1))

            cumulative = np.cumsum(zeta, axis=-1)
            cumulative = np.concatenate([np.zeros_like(b)[:, None], cumulative], -1)
            eta += b[:, None] * zeta.shape[-1] * cumulative[:, term.index]

        return eta

    def _design(self, newdata: pd.DataFrame | None, info: ResponseInfo):
        return info.design if newdata is None else info.design.transform(newdata)

    def linear_predictor(
        self, newdata: pd.DataFrame | None = None, response: str | None = None
    ) -> np.ndarray:
        """
        Posterior draws of the linear predictor of the location on the logit scale.

        Returns an array with the draws in the first and the observations in the
        second dimension.
        """
        info = self.response_info(response)
        design = self._design(newdata, info)
        return self._predictor(info.prefix, "mu", design.mu)

    def _dispersion(self, design: ModelDesign, info: ResponseInfo) -> np.ndarray:
        if design.phi is None:
            phi = self.draws(info.prefix + "phi")
            return np.broadcast_to(phi[:, None], (self.num_draws, design.nobs))

        return np.exp(self._predictor(info.prefix, "phi", design.phi))

    def _parameters(self, newdata: pd.DataFrame | None, info: ResponseInfo):
        design = self._design(newdata, info)
        loc = self._predictor(info.prefix, "mu", design.mu)
        phi = self._dispersion(design, info)
        cutpoints = self.draws(info.prefix + "cutpoints")[:, None, :]
        return loc, phi, cutpoints

    def expected_value_draws(
        self, newdata: pd.DataFrame | None = None, response: str | None = None
    ) -> np.ndarray:
        """Posterior draws of the expected outcome on the original scale."""
        info = self.response_info(response)
        loc, _, cutpoints = self._parameters(newdata, info)
        return expected_value(loc, cutpoints, info.lower, info.upper)

    def predict(
        self,
        newdata: pd.DataFrame | None = None,
        kind: str = "response",
        response: str | None = None,
    ) -> np.ndarray:
        """
        Posterior mean predictions.

        Parameters
        ----------
        newdata
            The data to predict for. Defaults to the data of the fit.
        kind
            ``"response"`` for the expected outcome on the original scale, ``"mean"``
            for the expected outcome on the unit interval, ``"probs"`` for the
            probabilities of the lower bound, the interior and the upper bound.
        response
            The response of a multivariate model.

        Returns
        -------
        An array with one prediction per observation, or one row of three category
        probabilities per observation for ``kind="probs"``.
        """
        if kind not in _PREDICT_KINDS:
            raise ValueError(f"Unknown kind {kind!r}, expected one of {_PREDICT_KINDS}.")

        info = self.response_info(response)
        loc, _, cutpoints = self._parameters(newdata, info)

        if kind == "probs":
            return category_probs(loc, cutpoints).mean(axis=0)

        if kind == "mean":
            return expected_value(loc, cutpoints).mean(axis=0)

        return expected_value(loc, cutpoints, info.lower, info.upper).mean(axis=0)

    def posterior_predict(
        self,
        newdata: pd.DataFrame | None = None,
        ndraws: int | None = None,
        seed: int | np.random.Generator | None = None,
        response: str | None = None,
        scale: str = "original",
    ) -> np.ndarray:
        """
        Draws from the posterior predictive distribution.

        Parameters
        ----------
        newdata
            The data to predict for. Defaults to the data of the fit.
        ndraws
            The number of posterior draws to use, chosen at random. Defaults to all
            draws.
        seed
            Seed or :class:`numpy.random.Generator` for the draws.
        response
            The response of a multivariate model.
        scale
            ``"original"`` for draws on the original scale of the outcome, ``"unit"``
            for draws on the unit interval.

        Returns
        -------
        An array with the draws in the first and the observations in the second
        dimension.
        """
        if scale not in ("original", "unit"):
            raise ValueError(f"Unknown scale {scale!r}.")

        info = self.response_info(response)
        rng = np.random.default_rng(seed)

        loc, phi, cutpoints = self._parameters(newdata, info)

        if ndraws is not None:
            if not 0 < ndraws <= self.num_draws:
                raise ValueError(
                    f"`ndraws` must be in [1, {self.num_draws}], got {ndraws}."
                )
            idx = rng.choice(self.num_draws, size=ndraws, replace=False)
            loc, phi, cutpoints = loc[idx], phi[idx], cutpoints[idx]

        draws = _draw(rng, loc, phi, cutpoints[..., 0], cutpoints[..., 1])

        if scale == "unit":
            return draws

        return info.outcome.to_original(draws)

    def marginal_effects(
        self,
        variables: str | list[str] | None = None,
        eps: float = 1e-4,
        ci: float = 0.95,
        response: str | None = None,
    ) -> pd.DataFrame:
        """
        Average marginal effects on the original scale of the outcome. See
        :func:`.average_marginal_effects`.
        """
        return average_marginal_effects(self, variables, eps, ci, response)

    def coefficient_names(self) -> dict[str, str]:
        """
        Maps the labels of the regression coefficients in :meth:`.summary` to the
        names of the columns of the design matrices.
        """
        names = {}

        for info in self.responses.values():
            designs = {"mu": info.design.mu, "phi": info.design.phi}

            for predictor, design in designs.items():
                if design is None:
                    continue

                keys = _term_keys(info.prefix, predictor)
                label = info.prefix + predictor

                if design.has_intercept:
                    names[keys["intercept"]] = f"{label}_Intercept"

                for i, column in enumerate(design.columns):
                    names[f"{keys['beta']}[{i}]"] = f"{label}_{column}"

        return names

    def summary(self, rename: bool = True, **kwargs) -> pd.DataFrame:
        """
        Summarizes the posterior with :func:`arviz.summary`.

        Parameters on the unconstrained scale are omitted. Keyword arguments are
        passed on to :func:`arviz.summary`.

        Parameters
        ----------
        rename
            Whether to label the regression coefficients with the names of the columns
            of the design matrices.
        """
        samples = {
            key: np.asarray(value)
            for key, value in self.samples.items()
            if not key.endswith("_transformed")
        }

        idata = az.convert_to_inference_data(samples)
        summary = az.summary(idata, **kwargs)

        if rename:
            summary = summary.rename(index=self.coefficient_names())

        return summary

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(responses={list(self.responses)}, "
            f"chains={self.num_chains}, draws={self.num_draws})"
        )


def _run_engine(
    model: Model,
    positions: list[str],
    seed: int,
    num_chains: int,
    warmup: int,
    posterior: int,
    thinning: int,
    init: str,
    show_progress: bool,
) -> gs.SamplingResults:
    builder = gs.EngineBuilder(seed=seed, num_chains=num_chains)

    builder.set_model(gs.LieselInterface(model))
    builder.set_initial_values(model.state)

    parameters = parameter_names(model)
    builder.add_kernel(gs.NUTSKernel(parameters))

    if init == "random":
        builder.set_jitter_fns({key: _jitter for key in parameters})

    builder.set_duration(
        warmup_duration=warmup,
        posterior_duration=posterior,
        thinning_posterior=thinning,
    )

    builder.positions_included = positions
    builder.show_progress = show_progress

    engine = builder.build()
    engine.sample_all_epochs()
    return engine.get_results()


def build_designs(
    formulas: list[str],
    datasets: list[pd.DataFrame],
    phi_formulas: list[str | None],
) -> list[list[ModelDesign]]:
    """
    Builds the designs of all responses for every data set.

    The designs of the later data sets are aligned with the first one, so that all
    data sets share the same parameters. Returns one list of designs (one per
    formula) for every data set.
    """
    all_designs = []

    for dataset in datasets:
        designs = [
            ModelDesign.from_formula(f, dataset, phi_formula=phi_f)
            for f, phi_f in zip(formulas, phi_formulas)
        ]

        names = [design.response_name for design in designs]

        if len(set(names)) != len(names):
            raise ValueError(f"The responses {names} of the formulas are not distinct.")

        if all_designs:
            designs = [d.align(ref) for d, ref in zip(designs, all_designs[0])]

        all_designs.append(designs)

    return all_designs


def ordbetareg(
    formula: str | Sequence[str],
    data: pd.DataFrame | Sequence[pd.DataFrame],
    true_bounds: Bounds | dict[str, Bounds] | None = None,
    phi_formula: str | dict[str, str] | None = None,
    priors: OrdBetaPriors | None = None,
    num_chains: int = 4,
    warmup: int = 1000,
    posterior: int = 1000,
    thinning: int = 1,
    seed: int | None = None,
    init: str = "zero",
    show_progress: bool = True,
) -> OrdBetaRegFit:
    """
    Fits an ordered beta regression model.

    The outcome is rescaled to the unit interval with :func:`.normalize`, the design
    matrices are built with patsy and the posterior is sampled with a NUTS kernel
    from :mod:`liesel.goose`.

    Parameters
    ----------
    formula
        A formula like ``"y ~ x + mo(education) + (1 | region)"``, or a sequence of
        formulas with different responses for a multivariate model.
    data
        A data frame, or a sequence of data frames with multiply imputed data. Every
        data frame is fitted separately and the posterior samples are pooled.
    true_bounds
        The bounds of the scale of the outcome, see :func:`.normalize`. For a
        multivariate model, a dict mapping the responses to their bounds.
    phi_formula
        A one-sided formula like ``"~ x"`` for the dispersion parameter. If ``None``,
        the dispersion is constant. For a multivariate model, a dict mapping the
        responses to their formulas.
    priors
        The prior configuration. Defaults to :class:`.OrdBetaPriors`.
    num_chains
        The number of MCMC chains per data set.
    warmup
        The number of warmup iterations.
    posterior
        The number of posterior iterations.
    thinning
        The thinning of the posterior samples.
    seed
        The seed of the engine. If ``None``, a random seed is drawn and logged.
    init
        ``"zero"`` to start all chains from the initial values of the model,
        ``"random"`` to jitter them uniformly on (-2, 2) on the unconstrained scale.
    show_progress
        Whether to show progress bars while sampling.

    Returns
    -------
    The fitted model.
    """
    formulas = [formula] if isinstance(formula, str) else list(formula)
    datasets = [data] if isinstance(data, pd.DataFrame) else list(data)

    if not formulas:
        raise ValueError("Need at least one formula.")

    if not datasets:
        raise ValueError("Need at least one data set.")

    for dataset in datasets:
        if not isinstance(dataset, pd.DataFrame):
            raise TypeError(f"Expected a pandas DataFrame, got {type(dataset)}.")

    if init not in ("zero", "random"):
        raise ValueError(f"`init` must be 'zero' or 'random', got {init!r}.")

    if num_chains < 1:
        raise ValueError(f"`num_chains` must be positive, got {num_chains}.")

    priors = priors or OrdBetaPriors()

    if seed is None:
        seed = int(np.random.default_rng().integers(2**31 - 1))
        logger.info(f"Using the random seed {seed}.")

    multivariate = len(formulas) > 1
    phi_formulas = _resolve_per_response(
        phi_formula, [parse_formula(f).response for f in formulas], "phi_formula"
    )
    all_designs = build_designs(formulas, datasets, phi_formulas)

    names = [design.response_name for design in all_designs[0]]
    bounds = _resolve_per_response(true_bounds, names, "true_bounds")
    prefixes = [name + "_" if multivariate else "" for name in names]

    # set up all models before sampling, so that invalid data fail early
    prepared = []
    for dataset, designs in zip(datasets, all_designs):
        outcomes = [normalize(d.response, b) for d, b in zip(designs, bounds)]
        model = build_model(designs, outcomes, priors, prefixes)

        infos = [
            ResponseInfo(name, prefix, design, outcome, dataset.loc[design.index])
            for name, prefix, design, outcome in zip(names, prefixes, designs, outcomes)
        ]
        prepared.append((model, infos))

    responses = {info.name: info for info in prepared[0][1]}

    models = []
    results = []
    samples = []

    for i, (model, infos) in enumerate(prepared):
        positions = [key for info in infos for key in _tracked_positions(info)]

        logger.info(
            f"Sampling data set {i + 1} of {len(datasets)} with {num_chains} chains."
        )

        result = _run_engine(
            model,
            positions,
            seed + i,
            num_chains,
            warmup,
            posterior,
            thinning,
            init,
            show_progress,
        )

        divergent, treedepth = _count_errors(result)

        if divergent:
            logger.warning(
                f"There were {divergent} divergent transitions after warmup in data "
                f"set {i + 1}. Consider a longer warmup or stronger priors."
            )

        if treedepth:
            logger.warning(
                f"{treedepth} transitions after warmup in data set {i + 1} hit the "
                "maximum tree depth."
            )

        models.append(model)
        results.append(result)
        samples.append(
            {k: np.asarray(v) for k, v in result.get_posterior_samples().items()}
        )

    return OrdBetaRegFit(
        models=models,
        results=results,
        samples=_pool(samples),
        responses=responses,
        priors=priors,
        seed=seed,
        info={
            "formula": formulas,
            "phi_formula": phi_formula,
            "num_datasets": len(datasets),
            "warmup": warmup,
            "posterior": posterior,
            "thinning": thinning,
        },
    )
