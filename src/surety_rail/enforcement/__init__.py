"""
SURETY RAIL - Enforcement Module

Every mutating call passes the operational gate and the caller allow-list
before the ledgers are touched, and every committed transition is receipted.
"""

from .rail import SuretyRail

__all__ = [
    "SuretyRail",
]
