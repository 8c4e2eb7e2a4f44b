"""
Core modules for MPAI Guard.

This package contains query classification, cost estimation and limits,
the cost ledger, conversation context windowing and analysis orchestration.
"""
