"""
Design matrices from brms-style model formulas.

The fixed-effects part of a formula is handed to :mod:`patsy` unchanged. Two
additional kinds of terms are split off before that:

- ``(1 | g)``: a random intercept for every level of the grouping column ``g``.
- ``mo(x)``: a monotonic effect of the ordinal column ``x``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
import pandas as pd
import patsy

Array = Any

logger = logging.getLogger(__name__)

_GROUP_TERM = re.compile(r"\(\s*([^()|]*?)\s*\|\s*([^()|]*?)\s*\)")
_MO_TERM = re.compile(r"\bmo\(\s*([^()]*?)\s*\)")
_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")

_EVAL_ENV = patsy.EvalEnvironment([{"np": np, "numpy": np}])


@dataclass(frozen=True)
class FormulaTerms:
    """The parts of a parsed model formula."""

    response: str
    """The left-hand side, empty for one-sided formulas."""

    fixed: str
    """The right-hand side without special terms, to be handed to patsy."""

    groups: tuple[str, ...] = ()
    """The grouping columns of random intercept terms."""

    monotonic: tuple[str, ...] = ()
    """The ordinal columns of monotonic terms."""

    @property
    def columns(self) -> list[str]:
        """The data columns referenced by special terms."""
        return list(self.groups) + list(self.monotonic)


def _clean_rhs(rhs: str) -> str:
    rhs = re.sub(r"\+(\s*\+)+", "+", rhs)
    rhs = rhs.strip().strip("+").strip()
    return rhs or "1"


def _check_name(name: str, term: str) -> str:
    if not _NAME.match(name):
        raise ValueError(f"Expected a column name in {term!r}, got {name!r}.")
    return name


def parse_formula(formula: str, one_sided: bool = False) -> FormulaTerms:
    """
    Splits a formula into its response, fixed-effects part and special terms.

    Parameters
    ----------
    formula
        A formula like ``"y ~ x + mo(education) + (1 | region)"``.
    one_sided
        Whether the formula must be one-sided, like ``"~ x"``. One-sided formulas
        cannot contain special terms.

    Raises
    ------
    ValueError
        If the formula does not contain exactly one ``~``, if a two-sided formula
        has no response (or a one-sided formula has one), or if it contains grouping
        terms other than random intercepts ``(1 | g)``.

    Examples
    --------

    >>> parse_formula("y ~ x + mo(edu) + (1 | region)")
    FormulaTerms(response='y', fixed='x', groups=('region',), monotonic=('edu',))
    """
    if formula.count("~") != 1:
        raise ValueError(f"A formula needs exactly one '~', got {formula!r}.")

    lhs, rhs = (part.strip() for part in formula.split("~"))

    if one_sided and lhs:
        raise ValueError(f"Expected a one-sided formula like '~ x', got {formula!r}.")

    if not one_sided and not lhs:
        raise ValueError(f"The formula {formula!r} has no response.")

    groups = []
    for match in _GROUP_TERM.finditer(rhs):
        effect, group = match.group(1), match.group(2)
        if effect != "1":
            raise ValueError(
                f"Only random intercepts '(1 | {group})' are supported, got "
                f"{match.group(0)!r}."
            )
        groups.append(_check_name(group, match.group(0)))

    rhs = _GROUP_TERM.sub("", rhs)

    monotonic = [_check_name(m.group(1), m.group(0)) for m in _MO_TERM.finditer(rhs)]
    rhs = _MO_TERM.sub("", rhs)

    if "|" in rhs:
        raise ValueError(f"Could not parse the grouping terms in {formula!r}.")

    if one_sided and (groups or monotonic):
        raise ValueError(
            f"Random intercepts and monotonic terms are not supported in {formula!r}."
        )

    return FormulaTerms(
        response=lhs,
        fixed=_clean_rhs(rhs),
        groups=tuple(dict.fromkeys(groups)),
        monotonic=tuple(dict.fromkeys(monotonic)),
    )


@dataclass
class GroupTerm:
    """A random intercept term ``(1 | name)``."""

    name: str
    levels: pd.Index
    index: np.ndarray
    """Level indices of the observations, ``-1`` for levels unseen in the fit."""

    @property
    def n_levels(self) -> int:
        return len(self.levels)

    @classmethod
    def from_column(cls, name: str, column: pd.Series) -> GroupTerm:
        categorical = pd.Categorical(column)
        return cls(name, pd.Index(categorical.categories), _codes(categorical))

    def transform(self, column: pd.Series) -> GroupTerm:
        categorical = pd.Categorical(column, categories=self.levels)
        return GroupTerm(self.name, self.levels, _codes(categorical))


@dataclass
class MonotonicTerm:
    """A monotonic effect ``mo(name)`` of an ordinal predictor."""

    name: str
    levels: pd.Index
    index: np.ndarray

    @property
    def n_levels(self) -> int:
        return len(self.levels)

    @classmethod
    def from_column(cls, name: str, column: pd.Series) -> MonotonicTerm:
        if isinstance(column.dtype, pd.CategoricalDtype):
            levels = pd.Index(column.cat.categories)
        else:
            levels = pd.Index(np.sort(column.unique()))

        if len(levels) < 2:
            raise ValueError(f"The monotonic predictor {name!r} needs two levels.")

        term = cls(name, levels, np.zeros(len(column), dtype=np.int32))
        return term.transform(column)

    def transform(self, column: pd.Series) -> MonotonicTerm:
        categorical = pd.Categorical(column, categories=self.levels)
        index = _codes(categorical)

        if np.any(index < 0):
            unknown = pd.unique(column[index < 0])
            raise ValueError(
                f"Unknown levels of the monotonic predictor {self.name!r}: "
                f"{list(unknown)}."
            )

        return MonotonicTerm(self.name, self.levels, index)


def _codes(categorical: pd.Categorical) -> np.ndarray:
    return np.asarray(categorical.codes, dtype=np.int32)


@dataclass
class PredictorDesign:
    """Design of one distributional parameter, i.e. ``mu`` or ``phi``."""

    X: np.ndarray
    """Design matrix without the intercept column."""

    columns: list[str]
    has_intercept: bool
    design_info: patsy.DesignInfo
    groups: list[GroupTerm] = field(default_factory=list)
    monotonic: list[MonotonicTerm] = field(default_factory=list)

    @classmethod
    def from_dataframe(
        cls,
        X: pd.DataFrame,
        design_info: patsy.DesignInfo,
        groups: list[GroupTerm] | None = None,
        monotonic: list[MonotonicTerm] | None = None,
    ) -> PredictorDesign:
        has_intercept = "Intercept" in X.columns
        X = X.drop(columns="Intercept") if has_intercept else X

        return cls(
            X=X.to_numpy(dtype=np.float64),
            columns=list(X.columns),
            has_intercept=has_intercept,
            design_info=design_info,
            groups=groups or [],
            monotonic=monotonic or [],
        )

    def transform(self, newdata: pd.DataFrame) -> PredictorDesign:
        (X,) = patsy.build_design_matrices(
            [self.design_info], newdata, NA_action="raise", return_type="dataframe"
        )
        groups = [term.transform(newdata[term.name]) for term in self.groups]
        monotonic = [term.transform(newdata[term.name]) for term in self.monotonic]
        return PredictorDesign.from_dataframe(X, self.design_info, groups, monotonic)

    @property
    def nobs(self) -> int:
        return self.X.shape[0]


@dataclass
class ModelDesign:
    """
    Design matrices and index vectors of an ordered beta regression model.

    Use :meth:`.from_formula` to set up a design from a formula and a data frame,
    and :meth:`.transform` to evaluate the same design on new data.
    """

    terms: FormulaTerms
    mu: PredictorDesign
    phi: PredictorDesign | None = None
    phi_terms: FormulaTerms | None = None
    response: np.ndarray | None = None
    index: pd.Index | None = None

    @property
    def response_name(self) -> str:
        return self.terms.response

    @property
    def nobs(self) -> int:
        return self.mu.nobs

    @classmethod
    def from_formula(
        cls, formula: str, data: pd.DataFrame, phi_formula: str | None = None
    ) -> ModelDesign:
        """
        Builds the design of a model.

        Rows with missing values in any of the referenced columns are dropped with a
        warning.

        Parameters
        ----------
        formula
            The formula of the mean, e.g. ``"y ~ x + (1 | g)"``.
        data
            The data frame containing all columns referenced in the formulas.
        phi_formula
            A one-sided formula for the dispersion parameter, e.g. ``"~ x"``. If
            ``None``, the dispersion is constant.
        """
        terms = parse_formula(formula)
        phi_terms = parse_formula(phi_formula, one_sided=True) if phi_formula else None

        missing = [col for col in terms.columns if col not in data.columns]
        if missing:
            raise ValueError(f"Columns not found in the data: {missing}.")

        nrow = len(data)
        data = data.loc[data[terms.columns].notna().all(axis=1)]

        y, X = patsy.dmatrices(
            f"{terms.response} ~ {terms.fixed}",
            data,
            eval_env=_EVAL_ENV,
            NA_action="drop",
            return_type="dataframe",
        )

        if y.shape[1] != 1:
            raise ValueError(
                f"The response {terms.response!r} must be a single numeric column."
            )

        index = X.index
        # patsy attaches design_info to the frame, subsetting drops it
        x_info = X.design_info

        Z = None
        z_info = None
        if phi_terms is not None:
            Z = patsy.dmatrix(
                phi_terms.fixed,
                data,
                eval_env=_EVAL_ENV,
                NA_action="drop",
                return_type="dataframe",
            )
            z_info = Z.design_info
            index = index.intersection(Z.index, sort=False)
            Z = Z.loc[index]

        X = X.loc[index]
        y = y.loc[index]
        data = data.loc[index]

        if len(index) < nrow:
            logger.warning(
                f"Dropped {nrow - len(index)} of {nrow} rows with missing values."
            )

        if len(index) == 0:
            raise ValueError("No complete observations left in the data.")

        groups = [GroupTerm.from_column(name, data[name]) for name in terms.groups]
        monotonic = [
            MonotonicTerm.from_column(name, data[name]) for name in terms.monotonic
        ]

        mu = PredictorDesign.from_dataframe(X, x_info, groups, monotonic)
        phi = PredictorDesign.from_dataframe(Z, z_info) if Z is not None else None

        return cls(
            terms=terms,
            mu=mu,
            phi=phi,
            phi_terms=phi_terms,
            response=y.iloc[:, 0].to_numpy(dtype=np.float64),
            index=index,
        )

    def transform(self, newdata: pd.DataFrame) -> ModelDesign:
        """
        Evaluates the design on new data. The returned design has no response.

        Levels of grouping columns that were not observed in the original data get
        the index ``-1``, i.e. they are predicted at the population level.
        """
        return ModelDesign(
            terms=self.terms,
            mu=self.mu.transform(newdata),
            phi=self.phi.transform(newdata) if self.phi is not None else None,
            phi_terms=self.phi_terms,
            response=None,
            index=newdata.index,
        )

    def align(self, reference: ModelDesign) -> ModelDesign:
        """
        Encodes the group and monotonic terms with the levels of ``reference``.

        The designs of multiply imputed data sets share one set of parameters, so
        their design matrices must have the same columns, and every level must be
        known to the first data set.

        Raises
        ------
        ValueError
            If the columns of the design matrices differ, or if a level of a grouping
            or monotonic column is unknown to ``reference``.
        """
        if self.mu.columns != reference.mu.columns:
            raise ValueError(
                f"The columns {self.mu.columns} of the design matrix differ from "
                f"{reference.mu.columns}."
            )

        if (self.phi is None) != (reference.phi is None) or (
            self.phi is not None and self.phi.columns != reference.phi.columns
        ):
            raise ValueError("The design matrices of phi differ.")

        groups = []
        for term, ref in zip(self.mu.groups, reference.mu.groups):
            aligned = ref.transform(pd.Series(term.levels[term.index]))

            if np.any(aligned.index < 0):
                unknown = list(term.levels.difference(ref.levels))
                raise ValueError(
                    f"Unknown levels of the group {term.name!r}: {unknown}."
                )

            groups.append(aligned)

        monotonic = [
            ref.transform(pd.Series(term.levels[term.index]))
            for term, ref in zip(self.mu.monotonic, reference.mu.monotonic)
        ]

        mu = replace(self.mu, groups=groups, monotonic=monotonic)
        return replace(self, mu=mu)
