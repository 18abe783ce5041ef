"""
External service clients used by workers.
"""

from .completion import (
    CompletionOptions, TextCompletionService, HTTPCompletionService, TemplateCompletionService
)

__all__ = [
    'CompletionOptions',
    'TextCompletionService',
    'HTTPCompletionService',
    'TemplateCompletionService'
]
