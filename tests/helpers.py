import numpy as np
import pandas as pd

from activity_report.pipeline import minutes_to_interval, prepare_observations

INTERVALS = [minutes_to_interval(m) for m in range(0, 24 * 60, 5)]


def example_frame() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "steps": ["", "10", "20"],
            "date": ["2012-10-01", "2012-10-01", "2012-10-02"],
            "interval": ["0", "5", "0"],
        }
    )


def synthetic_frame(days: int = 7, seed: int = 0, empty_day: int = 2, scatter: float = 0.05) -> pd.DataFrame:
    """Raw string frame shaped like the activity file.

    Steps peak in the morning; one whole day is missing and a share of the
    other rows is blanked at random.
    """
    rng = np.random.default_rng(seed)
    dates = pd.date_range("2012-10-01", periods=days, freq="D")
    rows = []
    for d_idx, day in enumerate(dates):
        for code in INTERVALS:
            hour = code // 100
            base = 80 if 8 <= hour < 10 else (20 if 6 <= hour < 22 else 0)
            steps = int(rng.poisson(base)) if base else 0
            blank = d_idx == empty_day or rng.random() < scatter
            rows.append(("" if blank else str(steps), day.strftime("%Y-%m-%d"), str(code)))
    return pd.DataFrame(rows, columns=["steps", "date", "interval"])


def synthetic_observations(**kwargs) -> pd.DataFrame:
    return prepare_observations(synthetic_frame(**kwargs))
