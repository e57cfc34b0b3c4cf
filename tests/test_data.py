import numpy as np
import pandas as pd
import pytest

from ordbetareg.data import HIGH, LOW, MID, BoundedOutcome, denormalize, normalize

rng = np.random.default_rng(1337)


@pytest.fixture
def slider() -> np.ndarray:
    y = rng.uniform(0, 100, size=50).round(1)
    y[:5] = 0.0
    y[-3:] = 100.0
    return y


class TestNormalize:
    def test_true_bounds(self, slider) -> None:
        outcome = normalize(slider, true_bounds=(0, 100))

        assert isinstance(outcome, BoundedOutcome)
        assert outcome.lower == 0.0
        assert outcome.upper == 100.0
        assert np.allclose(outcome.values, slider / 100)

    def test_bounds_are_exact(self) -> None:
        y = np.array([0.1, 0.35, 0.7])
        outcome = normalize(y, true_bounds=(0.1, 0.7))

        assert outcome.values[0] == 0.0
        assert outcome.values[-1] == 1.0
        assert 0.0 < outcome.values[1] < 1.0

    def test_interior_stays_interior_in_single_precision(self) -> None:
        y = np.array([0.0, 1e-50, 0.3, 0.99999999, 1.0])
        outcome = normalize(y)

        assert outcome.counts() == {"low": 1, "mid": 3, "high": 1}

        values32 = outcome.values.astype(np.float32)
        assert np.sum(values32 == 0.0) == 1
        assert np.sum(values32 == 1.0) == 1
        assert np.all((values32[1:-1] > 0.0) & (values32[1:-1] < 1.0))

    def test_round_trip_on_bounds(self, slider) -> None:
        outcome = normalize(slider, true_bounds=(0, 100))
        original = outcome.to_original()

        assert np.all(original[outcome.is_low] == 0.0)
        assert np.all(original[outcome.is_high] == 100.0)
        assert np.allclose(original, slider)

    def test_unit_interval_is_kept(self) -> None:
        y = np.array([0.0, 0.2, 0.5, 1.0])
        outcome = normalize(y)

        assert np.array_equal(outcome.values, y)
        assert (outcome.lower, outcome.upper) == (0.0, 1.0)

    def test_observed_bounds(self, local_caplog) -> None:
        with local_caplog() as caplog:
            outcome = normalize(np.array([2.0, 3.0, 6.0]))

        assert (outcome.lower, outcome.upper) == (2.0, 6.0)
        assert np.allclose(outcome.values, [0.0, 0.25, 1.0])

        assert len(caplog.records) == 1
        assert caplog.records[0].levelname == "INFO"
        assert "true_bounds" in caplog.records[0].getMessage()

    def test_series(self) -> None:
        y = pd.Series([10, 20, 30], name="y")
        outcome = normalize(y, true_bounds=(10, 30))
        assert np.allclose(outcome.values, [0.0, 0.5, 1.0])

    def test_category(self, slider) -> None:
        outcome = normalize(slider, true_bounds=(0, 100))

        assert outcome.category.dtype == np.int32
        assert np.all(outcome.category[outcome.is_low] == LOW)
        assert np.all(outcome.category[outcome.is_mid] == MID)
        assert np.all(outcome.category[outcome.is_high] == HIGH)

    def test_counts(self, slider) -> None:
        outcome = normalize(slider, true_bounds=(0, 100))
        counts = outcome.counts()

        assert counts["low"] == np.sum(slider == 0.0)
        assert counts["high"] == np.sum(slider == 100.0)
        assert sum(counts.values()) == len(outcome) == 50

    def test_outside_bounds(self) -> None:
        with pytest.raises(ValueError, match=r"outside of the bounds \[0.0, 10.0\]"):
            normalize([1.0, 11.0], true_bounds=(0, 10))

    @pytest.mark.parametrize("bounds", [(1, 1), (2, 1), (0, np.inf), (0,)])
    def test_invalid_bounds(self, bounds) -> None:
        with pytest.raises(ValueError):
            normalize([1.0], true_bounds=bounds)

    def test_missing_values(self) -> None:
        with pytest.raises(ValueError, match="missing"):
            normalize([0.1, np.nan, 0.4])

    def test_empty(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            normalize([])

    def test_constant(self) -> None:
        with pytest.raises(ValueError, match="constant"):
            normalize([3.0, 3.0, 3.0])

    @pytest.mark.parametrize(
        "y", [["a", "b"], np.array([True, False]), pd.Series(["a", "b"])]
    )
    def test_not_numeric(self, y) -> None:
        with pytest.raises(TypeError, match="numeric"):
            normalize(y)

    def test_not_one_dimensional(self) -> None:
        with pytest.raises(ValueError, match="one-dimensional"):
            normalize(np.zeros((2, 2)))


class TestDenormalize:
    def test_inverse(self) -> None:
        assert np.allclose(denormalize([0.0, 0.5, 1.0], -1.0, 3.0), [-1.0, 1.0, 3.0])

    def test_invalid_bounds(self) -> None:
        with pytest.raises(ValueError):
            denormalize([0.5], 1.0, 1.0)
