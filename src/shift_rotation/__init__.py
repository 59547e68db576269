"""
Shift Rotation Engine

Deterministic crew rotation for continuous-process plants: computes which
team works which shift slot on any date from a repeating rotation table,
layers plant-halt intervals on top, and keeps the configured shift
templates in a cache fed by a remote endpoint, a local copy or defaults.
"""

__version__ = "1.0.0"
__author__ = "Shift Rotation Team"
