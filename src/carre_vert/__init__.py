"""Carré Vert: attendance reconciliation and participation scoring for the club."""

__version__ = "0.1.0"
