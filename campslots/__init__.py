"""
campslots - Blood donation camp slot scheduling.
"""

__version__ = "0.1.0"
