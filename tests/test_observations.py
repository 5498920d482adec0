import logging

import numpy as np
import pandas as pd
import pytest

from nlfit import ObservationSet


def test_from_pairs_and_arrays_agree():
    pairs = [(0.0, 1.0), (1.0, 2.5), (2.0, 3.9)]
    a = ObservationSet.from_pairs(pairs)
    b = ObservationSet.from_arrays([0.0, 1.0, 2.0], [1.0, 2.5, 3.9])
    assert np.array_equal(a.x, b.x)
    assert np.array_equal(a.y, b.y)
    assert len(a) == 3


def test_from_pairs_rejects_triples():
    with pytest.raises(ValueError):
        ObservationSet.from_pairs([(0.0, 1.0, 2.0)])


def test_malformed_cells_are_logged_and_kept(caplog):
    df = pd.DataFrame(
        {
            "time": [0, 1, 2, 3, "four"],
            "signal": ["1.0", "2.1", "n/a", 4.2, 5.0],
        }
    )
    with caplog.at_level(logging.WARNING):
        obs = ObservationSet.from_frame(df, "time", "signal")

    assert obs.n_obs == 3
    assert list(obs.x) == [0.0, 1.0, 3.0]
    assert set(obs.rejected["value"]) == {"four", "n/a"}
    assert set(obs.rejected["column"]) == {"time", "signal"}
    assert "could not parse 'n/a'" in caplog.text


def test_from_frame_missing_column():
    df = pd.DataFrame({"dose": [1, 2], "response": [3, 4]})
    with pytest.raises(KeyError, match="Missing columns"):
        ObservationSet.from_frame(df, "dose", "effect")


def test_reserved_factor_name():
    df = pd.DataFrame({"dose": [1, 2], "response": [3, 4], "replicate": ["a", "b"]})
    with pytest.raises(ValueError, match="reserved"):
        ObservationSet.from_frame(df, "dose", "response", factors=["replicate"])


def test_rows_with_missing_factor_level_are_dropped(caplog):
    df = pd.DataFrame(
        {
            "dose": [1.0, 2.0, 3.0],
            "response": [1.0, 2.0, 3.0],
            "treatment": ["control", None, "drug"],
        }
    )
    obs = ObservationSet.from_frame(df, "dose", "response", factors=["treatment"])
    assert obs.n_obs == 2
    assert obs.levels("treatment") == ["control", "drug"]
    assert "missing factor level" in caplog.text


def test_from_wide_melts_replicate_columns():
    df = pd.DataFrame(
        {
            "time": [0.0, 1.0, 2.0],
            "cell 1": [1.0, 2.0, 3.0],
            "cell 2": [1.2, np.nan, 3.1],
        }
    )
    obs = ObservationSet.from_wide(df, "time")
    assert obs.n_obs == 5
    assert sorted(set(obs.replicate)) == ["cell 1", "cell 2"]


def test_from_wide_requires_replicate_columns():
    with pytest.raises(ValueError):
        ObservationSet.from_wide(pd.DataFrame({"time": [0.0, 1.0]}), "time")
    with pytest.raises(KeyError):
        ObservationSet.from_wide(pd.DataFrame({"t": [0.0]}), "time")


def test_accessor_arrays_are_read_only():
    obs = ObservationSet.from_arrays([0.0, 1.0], [2.0, 3.0])
    with pytest.raises(ValueError):
        obs.x[0] = 5.0


def test_n_distinct_counts_pairs():
    obs = ObservationSet.from_arrays([1.0, 1.0, 1.0, 2.0], [3.0, 3.0, 4.0, 4.0])
    assert obs.n_obs == 4
    assert obs.n_distinct == 3


def test_collapse_replicates_and_inverse_variance_weights():
    obs = ObservationSet.from_arrays(
        [1.0, 1.0, 1.0, 2.0, 2.0, 3.0],
        [2.0, 4.0, 6.0, 5.0, 7.0, 9.0],
    )
    collapsed = obs.collapse_replicates()
    frame = collapsed.to_frame()

    assert list(frame["x"]) == [1.0, 2.0, 3.0]
    assert list(frame["y"]) == [4.0, 6.0, 9.0]
    assert list(frame["n_replicates"]) == [3, 2, 1]
    assert frame["y_sd"].iloc[0] == pytest.approx(2.0)
    assert np.isnan(frame["y_sd"].iloc[2])

    with pytest.raises(ValueError):
        collapsed.inverse_variance_weights()
    with pytest.raises(KeyError):
        obs.inverse_variance_weights()

    two = ObservationSet.from_arrays([1.0, 1.0, 2.0, 2.0], [2.0, 4.0, 5.0, 9.0])
    weights = two.collapse_replicates().inverse_variance_weights()
    assert np.allclose(weights, [1.0 / 2.0, 1.0 / 8.0])


def test_groups_yield_tuple_keys():
    obs = ObservationSet.from_arrays(
        [1.0, 2.0, 1.0, 2.0],
        [1.0, 2.0, 3.0, 4.0],
        factors={"treatment": ["a", "a", "b", "b"]},
    )
    groups = dict(obs.groups(["treatment"]))
    assert set(groups) == {("a",), ("b",)}
    assert list(groups[("b",)].y) == [3.0, 4.0]
    with pytest.raises(KeyError):
        list(obs.groups(["subject"]))


def test_fit_delegates_to_fit_curve():
    x = np.linspace(0.0, 4.0, 6)
    obs = ObservationSet.from_arrays(x, 1.0 + 2.0 * x)
    result = obs.fit("linear")
    assert result.success
    assert np.allclose(result.params, [1.0, 2.0])
