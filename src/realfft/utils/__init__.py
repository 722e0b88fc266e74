"""
Utility modules.
"""

from .logging import setup_logging
from .seed import set_seed

__all__ = ['setup_logging', 'set_seed']
