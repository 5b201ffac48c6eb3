"""
Real-Time Recommendation Core
Online embedding learning with approximate nearest-neighbor retrieval
"""

__version__ = "1.0.0"
