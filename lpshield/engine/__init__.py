"""Risk engine — pure quantitative functions."""
from .price_safety import classify_deviation, verify_price_safety
from .risk import (
    build_risk_report,
    calculate_cvar,
    calculate_delta,
    calculate_il,
    calculate_risk_score,
    calculate_var,
)

__all__ = [
    "build_risk_report",
    "calculate_cvar",
    "calculate_delta",
    "calculate_il",
    "calculate_risk_score",
    "calculate_var",
    "classify_deviation",
    "verify_price_safety",
]
