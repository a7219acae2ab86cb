"""Capital structure, equity waterfall and Monte Carlo risk engines."""

__version__ = "0.1.0"
