"""
This conftest.py provides default imports for doctests. For the main conftest.py,
see tests/conftest.py.
"""

import jax
import jax.numpy as jnp
import numpy as np
import pandas as pd
import pytest

import ordbetareg as obr


@pytest.fixture(autouse=True)
def add_doctest_imports(doctest_namespace):
    doctest_namespace["np"] = np
    doctest_namespace["pd"] = pd
    doctest_namespace["jax"] = jax
    doctest_namespace["jnp"] = jnp
    doctest_namespace["obr"] = obr
