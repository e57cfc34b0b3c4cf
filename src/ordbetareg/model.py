"""
The Liesel model graph of an ordered beta regression.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

import jax.numpy as jnp
import numpy as np
import tensorflow_probability.substrates.jax.bijectors as tfb
import tensorflow_probability.substrates.jax.distributions as tfd
from liesel.model import Dist, GraphBuilder, Group, Model, Var
from liesel.option import Option

from .data import BoundedOutcome
from .design import ModelDesign
from .distributions import InducedDirichlet, OrderedBeta
from .priors import OrdBetaPriors

Array = Any

logger = logging.getLogger(__name__)

INVERSE_LINKS: dict[str, tuple[str, type[tfb.Bijector]]] = {
    "mu": ("loc", tfb.Identity),
    "phi": ("concentration", tfb.Exp),
}
"""
Maps the predictors to the parameters of the :class:`.OrderedBeta` distribution and
their inverse links.
"""

_DIST_PARAMETERS = ("loc", "concentration", "cutpoints")


def _sum(*args, **kwargs):
    return sum(args) + sum(kwargs.values())


def _take(values: Array, index: Array) -> Array:
    return jnp.take(values, index, axis=-1)


def _random_intercept(sd: Array, z: Array, index: Array) -> Array:
    return sd * _take(z, index)


def _monotonic(b: Array, zeta: Array, index: Array) -> Array:
    D = zeta.shape[-1]
    cumulative = jnp.concatenate([jnp.zeros(1), jnp.cumsum(zeta)])
    return b * D * _take(cumulative, index)


def parameter_names(model: Model) -> list[str]:
    """The sorted names of the variables of a model that are sampled by MCMC."""
    return sorted(name for name, var in model.vars.items() if var.parameter)


class OrdBetaRegBuilder(GraphBuilder):
    """
    A model builder for ordered beta regression models.

    The builder follows the workflow of Liesel's distributional regression builder:
    first add the response, then the predictors ``"mu"`` (and optionally ``"phi"``),
    then the additive terms of the predictors, the dispersion (if it is constant)
    and the cutpoints. All variable names start with ``prefix``, so that the graphs of
    several responses can be combined in one model.

    Parameters
    ----------
    prefix
        A prefix for the names of all variables, e.g. ``"y1_"``.

    Examples
    --------

    >>> y = np.array([0.0, 0.3, 0.6, 1.0])
    >>> X = np.array([[-1.0], [0.0], [0.5], [1.0]])
    >>> model = (
    ...     OrdBetaRegBuilder()
    ...     .add_response(y)
    ...     .add_predictor("mu")
    ...     .add_intercept("mu")
    ...     .add_p_smooth(X, m=0.0, s=5.0, predictor="mu")
    ...     .add_dispersion(rate=0.1)
    ...     .add_cutpoints()
    ...     .build_model()
    ... )
    >>> parameter_names(model)
    ['cutpoints_transformed', 'mu_intercept', 'mu_p0_beta', 'phi_transformed']
    """

    def __init__(self, prefix: str = "") -> None:
        super().__init__()

        self.prefix = prefix
        self._terms: dict[str, list[Var]] = defaultdict(list)
        self._distributional_parameters: dict[str, Var] = {}
        self._predictors: dict[str, Var] = {}
        self._response: Option[Var] = Option(None)

    @property
    def response(self) -> Var:
        """The response variable."""
        return self._response.expect(f"No response in {repr(self)}")

    @property
    def predictors(self) -> dict[str, Var]:
        """The predictors on the link scale."""
        return dict(self._predictors)

    def _predictor(self, predictor: str) -> Var:
        if predictor not in self._predictors:
            raise RuntimeError(
                f"No predictor '{predictor}' found. You need to add this predictor to"
                " the builder first."
            )
        return self._predictors[predictor]

    def _term_name(self, name: str | None, predictor: str, prefix: str) -> str:
        """Generates a name for a term if the ``name`` argument is ``None``."""

        other_names = [var.name for var in self._terms[predictor] if var.name]
        prefix = self.prefix + predictor + "_" + prefix
        counter = 0

        while prefix + str(counter) in other_names:
            counter += 1

        if not name:
            name = prefix + str(counter)
        else:
            name = self.prefix + predictor + "_" + name

        if name in other_names:
            raise RuntimeError(
                f"Term {repr(name)} already exists in {repr(self)} "
                f"for predictor {repr(predictor)}"
            )

        return name

    def _add_term(self, predictor: str, term: Var, group: Group) -> None:
        self._terms[predictor].append(term)
        self._predictors[predictor].value_node.add_inputs(term)
        self.add_groups(group)

    def _set_parameter(self, name: str, var: Var) -> None:
        if name in self._distributional_parameters:
            raise RuntimeError(
                f"The parameter '{name}' of the response distribution is already set "
                f"in {repr(self)}."
            )

        self._distributional_parameters[name] = var
        self.response.dist_node.set_inputs(  # type: ignore
            **self._distributional_parameters
        )

    def add_response(self, response: Array) -> OrdBetaRegBuilder:
        """
        Adds the response to the model builder.

        Parameters
        ----------
        response
            The response vector on the closed unit interval.
        """
        if self._response.is_some():
            raise RuntimeError(f"{repr(self)} already has a response.")

        response = np.asarray(response, dtype=np.float32)

        if np.any((response < 0.0) | (response > 1.0)):
            raise ValueError(
                "The response must lie in the closed unit interval. Use "
                "`ordbetareg.data.normalize()` to rescale it."
            )

        response_var = Var.new_obs(
            response, Dist(OrderedBeta), name=self.prefix + "response"
        )
        self._response = Option(response_var)
        self.add(response_var)

        return self

    def add_predictor(
        self, name: str, inverse_link: type[tfb.Bijector] | None = None
    ) -> OrdBetaRegBuilder:
        """
        Adds a predictor to the model builder.

        Parameters
        ----------
        name
            The name of the predictor, either ``"mu"`` for the location or ``"phi"``
            for the dispersion.
        inverse_link
            The inverse link mapping the predictor to the parameter of the response
            distribution. Defaults to the identity for ``"mu"`` (the location is on the
            logit scale) and to the exponential function for ``"phi"``.
        """
        if self._response.is_none():
            raise RuntimeError("No response found. Add a response first.")

        if name not in INVERSE_LINKS:
            raise ValueError(
                f"Unknown predictor {name!r}, expected one of {list(INVERSE_LINKS)}."
            )

        parameter, default_link = INVERSE_LINKS[name]
        inverse_link = inverse_link or default_link

        predictor_var = Var.new_calc(_sum, name=self.prefix + name + "_pdt")
        parameter_var = Var.new_calc(
            inverse_link().forward, predictor_var, name=self.prefix + name
        )

        self._set_parameter(parameter, parameter_var)
        self._predictors[name] = predictor_var

        self.add(predictor_var, parameter_var)
        return self

    def add_intercept(
        self,
        predictor: str,
        family: str = "student_t",
        prior: dict[str, float] | None = None,
    ) -> OrdBetaRegBuilder:
        """
        Adds an intercept to a predictor.

        Parameters
        ----------
        predictor
            The name of the predictor to add the intercept to.
        family
            The family of the prior, ``"normal"`` or ``"student_t"``.
        prior
            The parameters of the prior, ``loc`` and ``scale`` (and ``df`` for the
            Student-t prior). Defaults to Student-t(3, 0, 2.5).
        """
        self._predictor(predictor)

        prior = prior or {"df": 3.0, "loc": 0.0, "scale": 2.5}
        name = self.prefix + predictor + "_intercept"

        if family == "normal":
            distribution = Dist(tfd.Normal, loc=prior["loc"], scale=prior["scale"])
        elif family == "student_t":
            distribution = Dist(
                tfd.StudentT, df=prior["df"], loc=prior["loc"], scale=prior["scale"]
            )
        else:
            raise ValueError(f"Unknown intercept prior family {family!r}.")

        intercept_var = Var.new_param(0.0, distribution, name)
        self._add_term(predictor, intercept_var, Group(name, intercept=intercept_var))
        return self

    def add_p_smooth(
        self,
        X: Array,
        m: float,
        s: float,
        predictor: str,
        name: str | None = None,
    ) -> OrdBetaRegBuilder:
        """
        Adds a parametric term with a Gaussian prior on the coefficients.

        Parameters
        ----------
        X
            The design matrix.
        m
            The mean of the Gaussian prior.
        s
            The standard deviation of the Gaussian prior.
        predictor
            The name of the predictor to add the term to.
        name
            The name of the term.
        """
        self._predictor(predictor)
        name = self._term_name(name, predictor, "p")

        X_var = Var.new_obs(np.asarray(X, np.float32), name=name + "_X")
        m_var = Var.new_value(m, name=name + "_m")
        s_var = Var.new_value(s, name=name + "_s")

        beta = np.zeros(np.shape(X)[-1], np.float32)
        beta_distribution = Dist(tfd.Normal, loc=m_var, scale=s_var)
        beta_var = Var.new_param(beta, beta_distribution, name + "_beta")

        smooth_var = Var.new_calc(jnp.dot, X_var, beta_var, name=name)

        group = Group(name, smooth=smooth_var, beta=beta_var, X=X_var, m=m_var, s=s_var)
        self._add_term(predictor, smooth_var, group)
        return self

    def add_random_intercept(
        self,
        index: Array,
        n_levels: int,
        df: float = 3.0,
        scale: float = 2.5,
        predictor: str = "mu",
        name: str | None = None,
    ) -> OrdBetaRegBuilder:
        """
        Adds a random intercept to a predictor.

        The group effects are parametrized as ``sd * z[index]`` with standard normal
        ``z`` (non-centered parametrization). The standard deviation ``sd`` has a half
        Student-t prior and is sampled on the log scale.

        Parameters
        ----------
        index
            The level index of every observation.
        n_levels
            The number of levels of the grouping variable.
        df
            The degrees of freedom of the half Student-t prior of the standard
            deviation.
        scale
            The scale of the half Student-t prior of the standard deviation.
        predictor
            The name of the predictor to add the term to.
        name
            The name of the term, usually the name of the grouping variable.
        """
        self._predictor(predictor)
        name = self._term_name(name and "re_" + name, predictor, "re")

        index_var = Var.new_obs(np.asarray(index, np.int32), name=name + "_index")

        sd_distribution = Dist(tfd.HalfStudentT, df=df, loc=0.0, scale=scale)
        sd_var = Var.new_param(1.0, sd_distribution, name + "_sd")
        sd_var.transform(tfb.Exp())

        z_distribution = Dist(tfd.Normal, loc=0.0, scale=1.0)
        z_var = Var.new_param(np.zeros(n_levels, np.float32), z_distribution, name + "_z")

        effect_var = Var.new_calc(_random_intercept, sd_var, z_var, index_var, name=name)

        group = Group(name, effect=effect_var, sd=sd_var, z=z_var, index=index_var)
        self._add_term(predictor, effect_var, group)
        return self

    def add_monotonic(
        self,
        index: Array,
        n_levels: int,
        concentration: float = 1.0,
        m: float = 0.0,
        s: float = 5.0,
        predictor: str = "mu",
        name: str | None = None,
    ) -> OrdBetaRegBuilder:
        """
        Adds a monotonic effect of an ordinal predictor.

        The effect of level :math:`l` is :math:`b D \\sum_{i \\le l} \\zeta_i`, where
        :math:`D` is the number of levels minus one and :math:`\\zeta` is a simplex
        with a Dirichlet prior. Thus, :math:`b` is the average difference between
        adjacent levels and the effect of the lowest level is zero.

        Parameters
        ----------
        index
            The level index of every observation, starting at zero.
        n_levels
            The number of levels of the ordinal predictor.
        concentration
            The concentration of the symmetric Dirichlet prior of the simplex.
        m
            The mean of the Gaussian prior of ``b``.
        s
            The standard deviation of the Gaussian prior of ``b``.
        predictor
            The name of the predictor to add the term to.
        name
            The name of the term, usually the name of the ordinal predictor.
        """
        self._predictor(predictor)
        name = self._term_name(name and "mo_" + name, predictor, "mo")

        if n_levels < 2:
            raise ValueError(f"A monotonic effect needs two levels, got {n_levels}.")

        D = n_levels - 1
        index_var = Var.new_obs(np.asarray(index, np.int32), name=name + "_index")

        b_distribution = Dist(tfd.Normal, loc=m, scale=s)
        b_var = Var.new_param(0.0, b_distribution, name + "_b")

        if D == 1:
            zeta_var = Var.new_value(np.ones(1, np.float32), name=name + "_zeta")
        else:
            concentration_var = Var.new_value(
                np.full(D, concentration, np.float32), name=name + "_concentration"
            )
            zeta_distribution = Dist(tfd.Dirichlet, concentration=concentration_var)
            zeta = np.full(D, 1.0 / D, np.float32)
            zeta_var = Var.new_param(zeta, zeta_distribution, name + "_zeta")
            zeta_var.transform(tfb.SoftmaxCentered())

        effect_var = Var.new_calc(_monotonic, b_var, zeta_var, index_var, name=name)

        group = Group(name, effect=effect_var, b=b_var, zeta=zeta_var, index=index_var)
        self._add_term(predictor, effect_var, group)
        return self

    def add_dispersion(self, rate: float = 0.1) -> OrdBetaRegBuilder:
        """
        Adds a constant dispersion parameter with an exponential prior. The parameter
        is sampled on the log scale.
        """
        if self._response.is_none():
            raise RuntimeError("No response found. Add a response first.")

        if "phi" in self._predictors:
            raise RuntimeError(
                f"{repr(self)} already has a predictor for 'phi'. A constant "
                "dispersion cannot be added on top of it."
            )

        name = self.prefix + "phi"
        rate_var = Var.new_value(rate, name=name + "_rate")
        phi_var = Var.new_param(1.0, Dist(tfd.Exponential, rate=rate_var), name)
        phi_var.transform(tfb.Exp())

        self._set_parameter("concentration", phi_var)
        self.add_groups(Group(name, phi=phi_var, rate=rate_var))
        return self

    def add_cutpoints(
        self, concentration: Array = (1.0, 1.0, 1.0), anchor: float = 0.0
    ) -> OrdBetaRegBuilder:
        """
        Adds the two cutpoints with an induced Dirichlet prior.

        The cutpoints are sampled on the unconstrained scale of the
        :class:`~tfp.bijectors.Ascending` bijector, i.e. as the first cutpoint and the
        logarithm of the difference between the cutpoints.

        Parameters
        ----------
        concentration
            The concentration of the Dirichlet prior of the three category
            probabilities.
        anchor
            The anchor point of the induced Dirichlet prior on the logit scale.
        """
        if self._response.is_none():
            raise RuntimeError("No response found. Add a response first.")

        name = self.prefix + "cutpoints"

        concentration_var = Var.new_value(
            np.asarray(concentration, np.float32), name=name + "_concentration"
        )
        anchor_var = Var.new_value(anchor, name=name + "_anchor")

        cutpoints_distribution = Dist(
            InducedDirichlet, concentration=concentration_var, anchor=anchor_var
        )
        cutpoints = np.array([-1.0, 1.0], np.float32)
        cutpoints_var = Var.new_param(cutpoints, cutpoints_distribution, name)
        cutpoints_var.transform(tfb.Ascending())

        self._set_parameter("cutpoints", cutpoints_var)
        self.add_groups(
            Group(
                name,
                cutpoints=cutpoints_var,
                concentration=concentration_var,
                anchor=anchor_var,
            )
        )
        return self

    def build_model(self, copy: bool = False) -> Model:
        missing = [p for p in _DIST_PARAMETERS if p not in self._distributional_parameters]

        if missing:
            raise RuntimeError(
                f"The parameters {missing} of the response distribution are not set in "
                f"{repr(self)}."
            )

        return super().build_model(copy=copy)


def add_design(
    builder: OrdBetaRegBuilder,
    design: ModelDesign,
    outcome: BoundedOutcome,
    priors: OrdBetaPriors,
) -> OrdBetaRegBuilder:
    """
    Adds the response, predictors and priors of one response to a builder.
    """
    builder.add_response(outcome.values)
    builder.add_predictor("mu")

    mu = design.mu

    if mu.has_intercept:
        builder.add_intercept("mu", *priors.intercept("mu"))

    if mu.columns:
        m, s = priors.coef("mu")
        builder.add_p_smooth(mu.X, m, s, predictor="mu", name="p0")

    for group in mu.groups:
        builder.add_random_intercept(
            group.index,
            group.n_levels,
            df=priors.group_sd_prior_df,
            scale=priors.group_sd_prior_scale,
            predictor="mu",
            name=group.name,
        )

    for term in mu.monotonic:
        m, s = priors.coef("mu")
        builder.add_monotonic(
            term.index,
            term.n_levels,
            concentration=priors.mo_dirichlet_prior,
            m=m,
            s=s,
            predictor="mu",
            name=term.name,
        )

    if design.phi is None:
        builder.add_dispersion(rate=priors.phi_prior)
    else:
        phi = design.phi
        builder.add_predictor("phi")

        if phi.has_intercept:
            builder.add_intercept("phi", *priors.intercept("phi"))

        if phi.columns:
            m, s = priors.coef("phi")
            builder.add_p_smooth(phi.X, m, s, predictor="phi", name="p0")

    builder.add_cutpoints(concentration=priors.dirichlet_prior)

    logger.debug(
        f"Added response {design.response_name!r} with {outcome.counts()} to the "
        "model graph."
    )

    return builder


def build_model(
    design: ModelDesign | list[ModelDesign],
    outcome: BoundedOutcome | list[BoundedOutcome],
    priors: OrdBetaPriors | None = None,
    prefix: str | list[str] = "",
) -> Model:
    """
    Builds the Liesel model of an ordered beta regression.

    Parameters
    ----------
    design
        The design of the model, or a list of designs for a multivariate model.
    outcome
        The rescaled response, or a list of responses matching the designs.
    priors
        The prior configuration. Defaults to :class:`.OrdBetaPriors`.
    prefix
        The prefix of the variable names, or a list of prefixes for a multivariate
        model. The prefixes of a multivariate model must be distinct.
    """
    priors = priors or OrdBetaPriors()

    designs = design if isinstance(design, list) else [design]
    outcomes = outcome if isinstance(outcome, list) else [outcome]
    prefixes = prefix if isinstance(prefix, list) else [prefix]

    if not len(designs) == len(outcomes) == len(prefixes):
        raise ValueError("Need one outcome and one prefix per design.")

    if len(set(prefixes)) != len(prefixes):
        raise ValueError(f"The prefixes {prefixes} are not distinct.")

    builders = []
    for design_, outcome_, prefix_ in zip(designs, outcomes, prefixes):
        builder = OrdBetaRegBuilder(prefix=prefix_)
        builders.append(add_design(builder, design_, outcome_, priors))

    builder = builders[0]
    for other in builders[1:]:
        builder.add(other)

    return builder.build_model()
