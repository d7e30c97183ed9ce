"""Matching engine and scoring factors."""

from .engine import MatchingEngine
from .factors import (
    ScoringFactor,
    AmountFactor,
    ClientReferenceFactor,
    ReceivableIdFactor,
    DateProximityFactor,
    build_factors,
)

__all__ = [
    "MatchingEngine",
    "ScoringFactor",
    "AmountFactor",
    "ClientReferenceFactor",
    "ReceivableIdFactor",
    "DateProximityFactor",
    "build_factors",
]
