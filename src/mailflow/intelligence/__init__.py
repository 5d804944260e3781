"""LLM-powered intelligence services."""

from .analysis import AnalysisOrchestrator, parse_todo_response
from .llm import AIClient, GeminiTransport, LLMError

__all__ = [
    "AIClient",
    "AnalysisOrchestrator",
    "GeminiTransport",
    "LLMError",
    "parse_todo_response",
]
