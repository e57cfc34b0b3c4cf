"""
Ordered beta regression for bounded continuous outcomes.
"""

from .__version__ import __version__, __version_info__  # isort: skip

from . import data, design, distributions, effects, model, plotting, priors, simulate
from .data import BoundedOutcome, denormalize, normalize
from .distributions import InducedDirichlet, OrderedBeta, dordbeta, rordbeta
from .effects import average_marginal_effects
from .fit import OrdBetaRegFit, ordbetareg
from .logging import reset_logger, setup_logger
from .plotting import pp_check_ordbeta
from .priors import OrdBetaPriors
from .simulate import sim_ordbeta, summarize_simulation

__all__ = [
    "BoundedOutcome",
    "InducedDirichlet",
    "OrdBetaPriors",
    "OrdBetaRegFit",
    "OrderedBeta",
    "average_marginal_effects",
    "denormalize",
    "dordbeta",
    "normalize",
    "ordbetareg",
    "pp_check_ordbeta",
    "reset_logger",
    "rordbeta",
    "setup_logger",
    "sim_ordbeta",
    "summarize_simulation",
]

# because logger setup takes place after importing the submodules, it only affects
# log messages emitted at runtime
setup_logger()
