import logging

import numpy as np
import pandas as pd
import pytest

from nlfit import ObservationSet, fit_groups, summarize_groups
from nlfit.grouped import INVALID_DATA, NO_DATA

DOSES = np.array([0.5, 1.0, 2.0, 4.0, 8.0, 16.0, 32.0])
KM = {("s1", "control"): 2.0, ("s2", "control"): 3.0, ("s1", "drug"): 6.0}


def _unbalanced_observations():
    rows = []
    for (subject, treatment), km in KM.items():
        for dose in DOSES:
            rows.append(
                {
                    "subject": subject,
                    "treatment": treatment,
                    "dose": dose,
                    "rate": 10.0 * dose / (km + dose),
                }
            )
    return ObservationSet.from_frame(
        pd.DataFrame(rows), "dose", "rate", factors=("subject", "treatment")
    )


def test_fit_groups_covers_full_grid_with_no_data_rows(caplog):
    obs = _unbalanced_observations()
    with caplog.at_level(logging.INFO):
        table, fits = fit_groups(
            obs, "michaelis_menten", by=["subject", "treatment"], return_fits=True
        )

    assert len(table) == 4
    assert set(fits) == set(KM)
    missing = table[(table["subject"] == "s2") & (table["treatment"] == "drug")].iloc[0]
    assert missing["status"] == NO_DATA
    assert not missing["success"]
    assert missing["n"] == 0
    assert np.isnan(missing["km"]) and np.isnan(missing["km_se"])
    assert "No observations for" in caplog.text

    fitted = table[table["success"]].set_index(["subject", "treatment"])
    for key, km in KM.items():
        assert fitted.loc[key, "km"] == pytest.approx(km, rel=1e-6)
        assert fitted.loc[key, "vmax"] == pytest.approx(10.0, rel=1e-6)
        assert fitted.loc[key, "n"] == len(DOSES)


def test_failed_group_keeps_its_row_with_nan_parameters():
    df = pd.DataFrame(
        {
            "dose": [1.0, 2.0, 4.0, 8.0, 1.0, 2.0],
            "rate": [3.0, 5.0, 6.5, 8.0, 3.0, 5.0],
            "treatment": ["a", "a", "a", "a", "b", "b"],
        }
    )
    obs = ObservationSet.from_frame(df, "dose", "rate", factors=["treatment"])
    table = fit_groups(obs, "michaelis_menten", by=["treatment"])

    row_b = table[table["treatment"] == "b"].iloc[0]
    assert row_b["status"] == "insufficient_data"
    assert np.isnan(row_b["vmax"])
    assert table[table["treatment"] == "a"]["success"].iloc[0]


def test_fit_groups_rejects_array_weights_and_empty_by():
    obs = _unbalanced_observations()
    with pytest.raises(ValueError):
        fit_groups(obs, "michaelis_menten", by=["subject"], weights=np.ones(obs.n_obs))
    with pytest.raises(ValueError):
        fit_groups(obs, "michaelis_menten", by=[])
    with pytest.raises(KeyError):
        fit_groups(obs, "michaelis_menten", by=["dose_group"])


def test_summarize_groups_counts_successful_fits_only():
    table = pd.DataFrame(
        {
            "subject": ["s1", "s2", "s3", "s1", "s2"],
            "treatment": ["control", "control", "control", "drug", "drug"],
            "success": [True, True, True, True, False],
            "km": [2.0, 3.0, 4.0, 6.0, np.nan],
        }
    )
    summary = summarize_groups(table, "km", by="treatment").set_index("treatment")

    control = summary.loc["control"]
    assert control["n"] == 3
    assert control["mean"] == pytest.approx(3.0)
    assert control["sd"] == pytest.approx(1.0)
    assert control["sem"] == pytest.approx(1.0 / np.sqrt(3.0))
    half = 4.302652729911275 / np.sqrt(3.0)
    assert control["ci_lower"] == pytest.approx(3.0 - half, rel=1e-6)
    assert control["ci_upper"] == pytest.approx(3.0 + half, rel=1e-6)

    drug = summary.loc["drug"]
    assert drug["n"] == 1
    assert drug["mean"] == pytest.approx(6.0)
    assert np.isnan(drug["sem"])


def test_summarize_groups_missing_column():
    with pytest.raises(KeyError):
        summarize_groups(pd.DataFrame({"treatment": ["a"]}), "km", by="treatment")


def test_group_with_unweightable_data_does_not_stop_the_others(caplog):
    df = pd.DataFrame(
        {
            "dose": np.tile(DOSES, 2),
            "rate": np.concatenate([10.0 * DOSES / (2.0 + DOSES)] * 2),
            "g": ["a"] * len(DOSES) + ["b"] * len(DOSES),
        }
    )
    df.loc[len(DOSES), "rate"] = 0.0
    obs = ObservationSet.from_frame(df, "dose", "rate", factors=["g"])

    table = fit_groups(obs, "michaelis_menten", by=["g"], weights="relative_observed")

    good = table[table["g"] == "a"].iloc[0]
    bad = table[table["g"] == "b"].iloc[0]
    assert good["success"]
    assert good["km"] == pytest.approx(2.0, rel=1e-6)
    assert bad["status"] == INVALID_DATA
    assert not bad["success"]
    assert bad["n"] == len(DOSES)
    assert np.isnan(bad["km"])
    assert "non-finite weights" in caplog.text


def test_fit_groups_validates_arguments_before_fitting():
    obs = _unbalanced_observations()
    with pytest.raises(ValueError, match="Unknown weighting mode"):
        fit_groups(obs, "michaelis_menten", by=["subject"], weights="cubic")
    with pytest.raises(ValueError):
        fit_groups(obs, "michaelis_menten", by=["subject"], p0=[1.0, 2.0, 3.0])

    def line(x, a, b):
        return a + b * x

    with pytest.raises(ValueError, match="no starting-value heuristic"):
        fit_groups(obs, line, by=["subject"])
