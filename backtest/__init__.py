"""
VaR backtesting: Kupiec proportion-of-failures and Christoffersen tests.
"""

from .kupiec import (
    VaRBacktester, exceedance_indicator, kupiec_pof, christoffersen_independence,
)
from .validation import verify_temporal_consistency, verify_no_lookahead

__all__ = [
    'VaRBacktester', 'exceedance_indicator', 'kupiec_pof',
    'christoffersen_independence', 'verify_temporal_consistency', 'verify_no_lookahead',
]
