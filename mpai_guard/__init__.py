"""
MPAI Guard: method selection and cost governance for multi-perspective
LLM analysis.
"""

__version__ = "0.1.0"
