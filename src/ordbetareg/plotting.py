"""
Posterior predictive checks of ordered beta regression models.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.figure import Figure

from .data import HIGH, LOW, MID

if TYPE_CHECKING:
    from .fit import OrdBetaRegFit

logger = logging.getLogger(__name__)

_CATEGORY_LABELS = {LOW: "Lower bound", MID: "Interior", HIGH: "Upper bound"}


def _categories(values: np.ndarray) -> np.ndarray:
    category = np.full(values.shape, MID, dtype=np.int32)
    category[values == 0.0] = LOW
    category[values == 1.0] = HIGH
    return category


def _count_df(observed: np.ndarray, predicted: np.ndarray) -> pd.DataFrame:
    """Observed and predicted counts per category, predicted with 90% intervals."""
    observed_category = _categories(observed)
    predicted_category = _categories(predicted)

    rows = []
    for code, label in _CATEGORY_LABELS.items():
        counts = (predicted_category == code).sum(axis=-1)
        q05, median, q95 = np.quantile(counts, [0.05, 0.5, 0.95])
        rows.append(
            {
                "category": label,
                "observed": int((observed_category == code).sum()),
                "predicted": median,
                "lower": q05,
                "upper": q95,
            }
        )

    return pd.DataFrame(rows)


def _save_path(save_path: str | Path, kind: str) -> Path:
    path = Path(save_path)
    return path.with_name(f"{path.stem}_{kind}{path.suffix}")


def plot_discrete(
    counts: pd.DataFrame,
    title: str | None = None,
    color: str = "C0",
    figsize: tuple[float, float] = (6.0, 4.0),
) -> Figure:
    """Plots observed against predicted counts of the three categories."""
    fig, ax = plt.subplots(figsize=figsize)

    sns.barplot(data=counts, x="category", y="observed", color=color, alpha=0.6, ax=ax)

    x = np.arange(len(counts))
    yerr = np.stack(
        [
            counts["predicted"] - counts["lower"],
            counts["upper"] - counts["predicted"],
        ]
    )
    ax.errorbar(
        x,
        counts["predicted"],
        yerr=yerr,
        fmt="o",
        color="black",
        capsize=4,
        label="Predicted (90% interval)",
    )

    ax.set_xlabel("")
    ax.set_ylabel("Count")
    ax.legend()

    if title is not None:
        ax.set_title(title)

    fig.tight_layout()
    return fig


def plot_continuous(
    observed: np.ndarray,
    predicted: np.ndarray,
    title: str | None = None,
    color: str = "C0",
    figsize: tuple[float, float] = (6.0, 4.0),
) -> Figure:
    """
    Plots the density of the observed interior values against the densities of the
    interior values of every posterior predictive draw.
    """
    fig, ax = plt.subplots(figsize=figsize)

    label = "Predicted"
    for draw in predicted:
        interior = draw[(draw > 0.0) & (draw < 1.0)]

        # a density needs at least two values
        if len(interior) < 2:
            continue

        sns.kdeplot(
            x=interior,
            color="grey",
            alpha=0.4,
            linewidth=0.8,
            clip=(0.0, 1.0),
            label=label,
            ax=ax,
        )
        label = None

    interior = observed[(observed > 0.0) & (observed < 1.0)]
    sns.kdeplot(
        x=interior, color=color, linewidth=2.0, clip=(0.0, 1.0), label="Observed", ax=ax
    )

    ax.set_xlim(0.0, 1.0)
    ax.set_xlabel("Outcome (unit scale)")
    ax.set_ylabel("Density")
    ax.legend()

    if title is not None:
        ax.set_title(title)

    fig.tight_layout()
    return fig


def pp_check_ordbeta(
    fit: OrdBetaRegFit,
    ndraws: int = 10,
    response: str | None = None,
    seed: int | np.random.Generator | None = None,
    style: str = "whitegrid",
    color: str = "C0",
    save_path: str | Path | None = None,
) -> dict[str, Figure]:
    """
    Posterior predictive checks of the discrete and the continuous part of an ordered
    beta regression model.

    Parameters
    ----------
    fit
        The fitted model.
    ndraws
        The number of posterior predictive draws.
    response
        The response of a multivariate model.
    seed
        Seed or :class:`numpy.random.Generator` for the posterior predictive draws.
    style
        Passed to the ``style`` argument of ``sns.set_theme()``. Valid options are
        ``"darkgrid"``, ``"whitegrid"``, ``"dark"``, ``"white"``, and ``"ticks"``.
    color
        The color of the observed data.
    save_path
        If provided, the figures are saved to this path with the suffixes
        ``_discrete`` and ``_continuous`` added to the file name. Otherwise, they are
        shown with ``plt.show()``.

    Returns
    -------
    A dict with the figures ``"discrete"`` (observed and predicted counts of the
    observations at the bounds and in the interior) and ``"continuous"`` (densities of
    the observed and predicted interior values).
    """
    info = fit.response_info(response)

    sns.set_theme(style=style)

    observed = info.outcome.values
    predicted = fit.posterior_predict(
        ndraws=ndraws, seed=seed, response=info.name, scale="unit"
    )

    counts = _count_df(observed, predicted)
    logger.debug(f"Posterior predictive counts:\n{counts}")

    figures = {
        "discrete": plot_discrete(counts, title=info.name, color=color),
        "continuous": plot_continuous(observed, predicted, title=info.name, color=color),
    }

    if save_path is not None:
        for kind, fig in figures.items():
            fig.savefig(_save_path(save_path, kind))
    else:
        plt.show()

    return figures
