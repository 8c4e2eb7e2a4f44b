"""
SDK for MPAI Guard.

Provides the analysis-model client used by the orchestrator.
"""

from .openai_client import OpenAIAnalysisClient

__all__ = ["OpenAIAnalysisClient"]
