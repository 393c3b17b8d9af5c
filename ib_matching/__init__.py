"""
IB Matching

Deterministic matching and ranking of IB Diploma students against
university program requirements.
"""

__version__ = "0.1.0"
