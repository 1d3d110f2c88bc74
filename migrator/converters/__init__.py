"""
Converters implementing ConversionPort.
"""

from .llm_converter import LLMConverter, clean_response

__all__ = [
    "LLMConverter",
    "clean_response",
]
