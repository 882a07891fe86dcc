"""
Report rendering: number formatting, charts and the Markdown document.

Nothing here feeds back into the analysis; every number printed comes from the
summary records built in pipeline.py.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Dict, Mapping

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from .pipeline import DailySummary, DayTypeSummary, MissingSummary, PeakInterval, interval_to_minutes, log

HOUR_TICKS = list(range(0, 24 * 60 + 1, 180))

DAY_TYPE_COLORS = {
    "weekday": "#1f77b4",
    "weekend": "#ff7f0e",
}


def format_number(value) -> str:
    """Whole numbers as-is, fractional values to two decimals, missing as NA."""
    if value is None or pd.isna(value):
        return "NA"
    value = float(value)
    if value.is_integer():
        return f"{int(value)}"
    return f"{value:.2f}"


def _hhmm(mins: int) -> str:
    return f"{mins // 60:02d}:{mins % 60:02d}"


def _time_axis(ax) -> None:
    ax.set_xticks(HOUR_TICKS)
    ax.set_xticklabels([_hhmm(m) for m in HOUR_TICKS], fontsize=9)
    ax.set_xlim(0, 24 * 60)
    ax.set_xlabel("Time of day")


def _save(fig, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    log(f"Saved plot: {path}")
    return path


# ---------------------------
# Charts
# ---------------------------

def plot_daily_histogram(totals: pd.Series, path: Path, title: str, bins: int = 20) -> Path:
    values = totals.dropna().astype(float)
    fig, ax = plt.subplots(figsize=(8, 4.5))
    ax.hist(values, bins=bins, color="#1f77b4", edgecolor="white")
    ax.axvline(values.mean(), color="#d62728", linestyle="--", label=f"mean {format_number(values.mean())}")
    ax.axvline(values.median(), color="#2ca02c", linestyle=":", label=f"median {format_number(values.median())}")
    ax.set_title(title)
    ax.set_xlabel("Total steps per day")
    ax.set_ylabel("Days")
    ax.legend(fontsize=8)
    ax.grid(axis="y", linestyle=":", alpha=0.4)
    return _save(fig, path)


def plot_interval_means(means: pd.Series, path: Path, title: str) -> Path:
    """Line chart of interval means on a decoded (linear) time-of-day axis."""
    minutes = [interval_to_minutes(int(code)) for code in means.index]
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(minutes, means.astype(float).to_numpy(), color="#1f77b4", linewidth=1.2)
    _time_axis(ax)
    ax.set_ylabel("Average steps")
    ax.set_title(title)
    ax.grid(axis="y", linestyle=":", alpha=0.4)
    return _save(fig, path)


def plot_interval_means_by_day_type(means_by_weekend: pd.Series, path: Path) -> Path:
    """Weekday and weekend interval means, one panel each, shared axes."""
    fig, axes = plt.subplots(2, 1, figsize=(10, 6), sharex=True, sharey=True)
    panels = {False: ("weekday", axes[1]), True: ("weekend", axes[0])}
    for is_weekend, part in means_by_weekend.groupby(level="is_weekend"):
        label, ax = panels[bool(is_weekend)]
        part = part.droplevel("is_weekend")
        minutes = [interval_to_minutes(int(code)) for code in part.index]
        ax.plot(minutes, part.astype(float).to_numpy(), color=DAY_TYPE_COLORS[label], linewidth=1.2)
        ax.set_title(label, fontsize=10)
        ax.set_ylabel("Average steps")
        ax.grid(axis="y", linestyle=":", alpha=0.4)
    _time_axis(axes[1])
    fig.suptitle("Average activity pattern: weekend vs weekday")
    return _save(fig, path)


# ---------------------------
# Files
# ---------------------------

def save_imputed(df: pd.DataFrame, path: Path) -> Path:
    out = df[["steps", "date", "interval"]].copy()
    out["date"] = out["date"].dt.strftime("%Y-%m-%d")
    out.to_csv(path, index=False)
    log(f"Saved: {path}")
    return path


def _nan_to_none(value):
    # NaN is not valid JSON
    if isinstance(value, dict):
        return {k: _nan_to_none(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_nan_to_none(v) for v in value]
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def save_metrics(metrics: dict, path: Path) -> Path:
    path.write_text(json.dumps(_nan_to_none(metrics), indent=2), encoding="utf-8")
    log(f"Saved: {path}")
    return path


# ---------------------------
# Document
# ---------------------------

def markdown_table(frame: pd.DataFrame, index_label: str = "") -> str:
    header = [index_label] + [str(c) for c in frame.columns]
    lines = [
        "| " + " | ".join(header) + " |",
        "|" + "|".join(["---"] * len(header)) + "|",
    ]
    for idx, row in frame.iterrows():
        cells = [str(idx)] + [format_number(v) for v in row.tolist()]
        lines.append("| " + " | ".join(cells) + " |")
    return "\n".join(lines)


def render_document(
    raw_daily: DailySummary,
    raw_peak: PeakInterval,
    missing: MissingSummary,
    patterns: pd.DataFrame,
    imputed_daily: DailySummary,
    imputed_peak: PeakInterval,
    day_types: Mapping[str, DayTypeSummary],
    figures: Dict[str, Path],
    seed: int,
) -> str:
    """Build the Markdown report. Numbers are formatted with format_number."""
    f = format_number
    weekday = day_types.get("weekday")
    weekend = day_types.get("weekend")

    parts = [
        "# Reproducible Research: Personal Activity Monitoring",
        "",
        "## Loading and preprocessing the data",
        "",
        f"The dataset holds {missing.rows} observations: the number of steps taken in each "
        "5-minute interval of the day. Every row is typed on load, and the weekday name and "
        "a weekend flag are derived from its date.",
        "",
        "## What is the mean total number of steps taken per day?",
        "",
        "Missing step counts are ignored, so they add nothing to a day's total.",
        "",
        f"![Total steps per day]({figures['raw_histogram'].as_posix()})",
        "",
        f"- Mean total steps per day: **{f(raw_daily.mean)}**",
        f"- Median total steps per day: **{f(raw_daily.median)}**",
        "",
        f"{raw_daily.zero_days} of the {raw_daily.days} days total 0 steps. Days with no "
        "recorded values are counted as zero rather than left out, which drags the mean and "
        "median down.",
        "",
        "## What is the average daily activity pattern?",
        "",
        f"![Average daily activity pattern]({figures['raw_pattern'].as_posix()})",
        "",
        f"The 5-minute interval with the highest average step count is **{raw_peak.interval}** "
        f"({raw_peak.label}), with **{f(raw_peak.mean_steps)}** steps on average.",
        "",
        "Interval codes are hour*100 + minute, so the charts plot them on a decoded time axis; "
        "plotted raw, the gap from 55 to 100 would look nine times wider than it is.",
        "",
        "## Imputing missing values",
        "",
        f"**{missing.missing_steps}** step values are missing "
        f"({f(missing.missing_share * 100)}% of all rows). Missing-data patterns "
        "(1 = present, 0 = missing):",
        "",
        markdown_table(patterns, index_label="pattern"),
        "",
    ]
    if missing.missing_dates:
        parts += [
            f"{len(missing.missing_dates)} day(s) have no recorded steps at all: " + ", ".join(missing.missing_dates) + ".",
            "",
        ]
    parts += [
        "Missing counts are filled by predictive mean matching: a regression of steps on the "
        "date, time of day and weekday picks, for every missing row, a handful of complete "
        "rows with the closest predicted value, and one of their observed counts is used. "
        f"The draw is seeded ({seed}), so the imputed dataset is reproducible.",
        "",
        f"![Total steps per day, imputed]({figures['imputed_histogram'].as_posix()})",
        "",
        "| | Raw (missing ignored) | Imputed |",
        "|---|---|---|",
        f"| Mean total steps per day | {f(raw_daily.mean)} | {f(imputed_daily.mean)} |",
        f"| Median total steps per day | {f(raw_daily.median)} | {f(imputed_daily.median)} |",
        f"| Days totalling 0 steps | {raw_daily.zero_days} | {imputed_daily.zero_days} |",
        f"| Peak interval | {raw_peak.interval} ({raw_peak.label}) | "
        f"{imputed_peak.interval} ({imputed_peak.label}) |",
        f"| Peak interval mean | {f(raw_peak.mean_steps)} | {f(imputed_peak.mean_steps)} |",
        "",
        f"Imputing moves the mean by {f(imputed_daily.mean - raw_daily.mean)} and the median by "
        f"{f(imputed_daily.median - raw_daily.median)} steps per day.",
        "",
        "## Are there differences in activity patterns between weekdays and weekends?",
        "",
        f"![Weekend vs weekday]({figures['day_type_pattern'].as_posix()})",
        "",
    ]
    for summary in (weekday, weekend):
        if summary is None:
            continue
        parts.append(
            f"- {summary.day_type.capitalize()}: peak at interval **{summary.peak.interval}** "
            f"({summary.peak.label}) with **{f(summary.peak.mean_steps)}** steps; "
            f"mean of **{f(summary.mean_steps)}** steps per interval, "
            f"**{f(summary.total_steps)}** per average day."
        )
    if weekday is not None and weekend is not None:
        busier = "weekends" if weekend.mean_steps > weekday.mean_steps else "weekdays"
        higher_peak = "weekdays" if weekday.peak.mean_steps > weekend.peak.mean_steps else "weekends"
        parts += [
            "",
            f"The single highest interval belongs to {higher_peak}, while activity summed over "
            f"the whole day is higher on {busier}.",
        ]
    parts.append("")
    return "\n".join(parts)
