"""Crowdcast: a population of AI participants wagering on shared prediction markets."""

__version__ = "0.1.0"
