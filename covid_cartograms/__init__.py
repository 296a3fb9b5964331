"""Continuous area cartograms of WHO COVID-19 indicators."""

__version__ = "0.1.0"
