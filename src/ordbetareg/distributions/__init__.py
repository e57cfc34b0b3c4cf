"""
The ordered beta distribution and the induced Dirichlet cutpoint prior for JAX-TFP.
"""

from .induced_dirichlet import InducedDirichlet
from .ordered_beta import OrderedBeta, dordbeta, rordbeta

__all__ = ["InducedDirichlet", "OrderedBeta", "dordbeta", "rordbeta"]
