"""
Surety Rail

Membership registration and governance for an airline insurance consortium.
"""

from .config import SuretyConfig, WEI_PER_ETHER
from .enforcement.rail import SuretyRail

__version__ = "1.0.0"

__all__ = [
    "SuretyConfig",
    "SuretyRail",
    "WEI_PER_ETHER",
]
