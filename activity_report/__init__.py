"""Personal activity monitoring report: load, aggregate, impute, render."""

__version__ = "0.1.0"
