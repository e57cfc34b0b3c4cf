import logging
from collections.abc import Generator
from contextlib import contextmanager

import numpy as np
import pandas as pd
import pytest
from _pytest.logging import LogCaptureHandler


def pytest_addoption(parser):
    parser.addoption(
        "--run-mcmc", action="store_true", default=False, help="run mcmc tests"
    )

    parser.addoption(
        "--mcmc-seed", action="store", default=42, help="set mcmc seed", type=int
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "mcmc: mark test as mcmc test")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-mcmc"):
        # --run-mcmc given in cli: do not skip mcmc tests
        return

    skip_mcmc = pytest.mark.skip(reason="need --run-mcmc option to run")

    for item in items:
        if "mcmc" in item.keywords:
            item.add_marker(skip_mcmc)


@pytest.fixture
def mcmc_seed(request):
    return request.config.getoption("--mcmc-seed")


@contextmanager
def local_caplog_fn(
    level: int = logging.INFO, name: str = "ordbetareg"
) -> Generator[LogCaptureHandler]:
    """
    Context manager that captures records from non-propagating loggers.

    After the end of the ``with`` statement, the log level is restored to its original
    value. Code adapted from `this GitHub comment <GH_>`_.

    .. _GH: https://github.com/pytest-dev/pytest/issues/3697#issuecomment-790925527

    Parameters
    ----------
    level
        The log level.
    name
        The name of the logger to update.
    """

    logger = logging.getLogger(name)

    old_level = logger.level
    logger.setLevel(level)

    handler = LogCaptureHandler()
    logger.addHandler(handler)

    try:
        yield handler
    finally:
        logger.setLevel(old_level)
        logger.removeHandler(handler)


@pytest.fixture
def local_caplog():
    """
    Fixture that yields a context manager for capturing records from non-propagating
    loggers.

    Examples
    --------
    Usage example::

        from ordbetareg.data import normalize


        def test_observed_bounds(local_caplog):
            with local_caplog() as caplog:
                normalize([1.0, 2.0, 3.0])
                assert caplog.records[0].levelname == "INFO"
    """

    yield local_caplog_fn


@pytest.fixture(scope="session")
def sim_data() -> pd.DataFrame:
    """Ordered beta data with one continuous and one binary covariate and a group."""
    from ordbetareg.distributions import rordbeta

    rng = np.random.default_rng(1337)
    n = 300

    x = rng.normal(size=n)
    d = rng.binomial(1, 0.5, size=n)
    g = rng.choice(["a", "b", "c"], size=n)
    edu = rng.choice([1, 2, 3, 4], size=n)

    mu = 1.0 / (1.0 + np.exp(-(0.3 + 0.8 * x - 0.5 * d)))
    y = rordbeta(n, mu=mu, phi=4.0, cutpoints=(-2.0, 2.0), seed=rng)

    return pd.DataFrame({"y": 100.0 * y, "x": x, "d": d, "g": g, "edu": edu})


@pytest.fixture(scope="session")
def fake_fit(sim_data):
    """A fit with posterior samples concentrated around known values."""
    from ordbetareg.data import normalize
    from ordbetareg.design import ModelDesign
    from ordbetareg.fit import OrdBetaRegFit, ResponseInfo
    from ordbetareg.priors import OrdBetaPriors

    rng = np.random.default_rng(42)
    design = ModelDesign.from_formula("y ~ x + d + (1 | g) + mo(edu)", sim_data)
    outcome = normalize(design.response, true_bounds=(0, 100))
    info = ResponseInfo("y", "", design, outcome, sim_data.loc[design.index])

    shape = (2, 50)

    def draws(value, sd=0.05):
        value = np.asarray(value, dtype=np.float32)
        noise = rng.normal(scale=sd, size=shape + value.shape)
        return (value + noise).astype(np.float32)

    samples = {
        "mu_intercept": draws(0.3),
        "mu_p0_beta": draws([0.8, -0.5]),
        "mu_re_g_sd": np.abs(draws(0.2)),
        "mu_re_g_z": draws([0.5, -0.5, 0.0]),
        "mu_mo_edu_b": draws(0.1),
        "mu_mo_edu_zeta": np.broadcast_to(
            np.array([0.5, 0.3, 0.2], dtype=np.float32), shape + (3,)
        ).copy(),
        "phi": np.abs(draws(4.0, sd=0.2)),
        "phi_transformed": np.log(np.abs(draws(4.0, sd=0.2))),
        "cutpoints": np.stack(
            [draws(-2.0, sd=0.1), draws(2.0, sd=0.1)], axis=-1
        ).astype(np.float32),
    }

    return OrdBetaRegFit(
        models=[],
        results=[],
        samples=samples,
        responses={"y": info},
        priors=OrdBetaPriors(),
        seed=42,
    )
