"""
Predictive mean matching for missing step counts.

A linear model of steps on the calendar/time-of-day covariates is fit on the
complete rows. Each missing row is then given the observed steps value of one
of the `donors` complete rows whose predicted value is closest to its own,
so imputed values always come from the observed distribution (whole,
non-negative counts) rather than from the regression line itself.

The missing rows are scored with coefficients drawn from the posterior of
the fit while the donors keep the fitted coefficients, which spreads the
draws the way a single multiple-imputation round does. Everything random goes
through one numpy Generator seeded by the caller.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from .pipeline import IMPUTE_SEED, PMM_DONORS, WEEKDAYS, log

RIDGE = 1e-5


class ImputationError(RuntimeError):
    """Insufficient data for imputation."""


def design_matrix(df: pd.DataFrame) -> pd.DataFrame:
    """Covariates: day index, hour of day (decoded, plus its square), weekday indicators."""
    hours = df["minute_of_day"].astype(float) / 60.0
    X = pd.DataFrame(
        {
            "day_index": (df["date"] - df["date"].min()).dt.days.astype(float),
            "hour": hours,
            "hour_sq": hours ** 2,
        },
        index=df.index,
    )
    weekday = pd.Categorical(df["weekday"].astype(str), categories=WEEKDAYS)
    dummies = pd.get_dummies(weekday, prefix="wd", drop_first=True, dtype=float)
    dummies.index = df.index
    return pd.concat([X, dummies], axis=1)


def _draw_coefficients(X1: np.ndarray, resid: np.ndarray, coef: np.ndarray, dof: int, rng: np.random.Generator) -> np.ndarray:
    # X1 carries the intercept column; coef is [intercept, *slopes]
    xtx = X1.T @ X1
    v = np.linalg.pinv(xtx + RIDGE * np.diag(np.diag(xtx)))
    v = (v + v.T) / 2
    sigma = np.sqrt(float(resid @ resid) / rng.chisquare(dof))
    return rng.multivariate_normal(coef, sigma ** 2 * v, method="eigh")


def _match(pred_obs: np.ndarray, values_obs: np.ndarray, pred_mis: np.ndarray, donors: int, rng: np.random.Generator) -> np.ndarray:
    """For each target prediction, draw one of the `donors` nearest observed values."""
    order = np.argsort(pred_obs, kind="stable")
    sorted_pred = pred_obs[order]
    sorted_vals = values_obs[order]
    n = len(sorted_pred)

    drawn = np.empty(len(pred_mis), dtype=values_obs.dtype)
    for i, target in enumerate(pred_mis):
        # the k nearest in a sorted array sit within k positions of the insertion point
        pos = int(np.searchsorted(sorted_pred, target))
        window = np.arange(max(pos - donors, 0), min(pos + donors, n))
        dist = np.abs(sorted_pred[window] - target)
        nearest = window[np.argsort(dist, kind="stable")[:donors]]
        drawn[i] = sorted_vals[rng.choice(nearest)]
    return drawn


def impute(observations: pd.DataFrame, seed: int = IMPUTE_SEED, donors: int = PMM_DONORS) -> pd.DataFrame:
    """Return a copy of `observations` with every missing steps value filled.

    Row count, row order and every observed steps value are unchanged. The
    same input and seed always give the same output.

    Raises ImputationError when the model cannot be fit: fewer complete rows
    than donors, covariates that do not vary, or no residual degrees of
    freedom left.
    """
    if donors < 1:
        raise ValueError("donors must be at least 1")

    out = observations.copy()
    missing = out["steps"].isna().to_numpy()
    if not missing.any():
        log("No missing steps; imputation skipped")
        return out

    X = design_matrix(out).to_numpy()
    y = out["steps"].to_numpy(dtype=float, na_value=np.nan)
    X_obs, y_obs = X[~missing], y[~missing]
    n_obs = len(y_obs)
    if n_obs < max(donors, 2):
        raise ImputationError(
            f"Insufficient data for imputation: {n_obs} complete row(s), need at least {max(donors, 2)}")
    if not np.any(X_obs.std(axis=0) > 0):
        raise ImputationError("Insufficient data for imputation: covariates are constant over the complete rows")

    X1 = np.column_stack([np.ones(n_obs), X_obs])
    dof = n_obs - int(np.linalg.matrix_rank(X1))
    if dof < 1:
        raise ImputationError(f"Insufficient data for imputation: no residual degrees of freedom ({n_obs} rows)")

    model = LinearRegression().fit(X_obs, y_obs)
    pred_obs = model.predict(X_obs)
    coef = np.concatenate([[model.intercept_], model.coef_])

    rng = np.random.default_rng(seed)
    coef_draw = _draw_coefficients(X1, y_obs - pred_obs, coef, dof, rng)
    X1_mis = np.column_stack([np.ones(int(missing.sum())), X[missing]])
    pred_mis = X1_mis @ coef_draw

    drawn = _match(pred_obs, y_obs.astype(np.int64), pred_mis, donors, rng)
    out.loc[missing, "steps"] = drawn
    out["steps"] = out["steps"].astype("Int64")
    log(f"Imputed {len(drawn)} missing steps value(s) by predictive mean matching "
        f"({donors} donors, seed {seed})")
    return out
