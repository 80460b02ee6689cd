"""
Custom Exception Hierarchy - Domain-specific error types

Typed exceptions for the failure modes of the consensus engine.
All custom exceptions inherit from DeliberationError for easy catching.

Threshold misses during comment selection are never errors: they produce
an empty selection plus an explanatory message instead.
"""

from typing import Optional, Dict, Any


class DeliberationError(Exception):
    """Base exception for all consensus engine errors

    All custom exceptions inherit from this, enabling:
    - Catch all engine errors with single except clause
    - Distinguish our errors from library errors
    - Add common attributes (context)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.context = context or {}
        super().__init__(message)

    def __str__(self):
        base_msg = super().__str__()
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_msg} (context: {context_str})"
        return base_msg


# ========== Vote Data Errors ==========


class GroupDataRequiredError(DeliberationError, TypeError):
    """A group-based metric was asked to score ungrouped vote data

    Examples:
    - Group informed consensus on a comment carrying a single VoteTally
    - Per-group statistics over comments with no opinion groups
    """

    def __init__(self, message: str, comment_id: Optional[str] = None, metric: Optional[str] = None):
        self.comment_id = comment_id
        self.metric = metric
        context = {}
        if comment_id is not None:
            context['comment_id'] = comment_id
        if metric:
            context['metric'] = metric
        super().__init__(message, context)


# ========== Configuration Errors ==========


class ConfigurationError(DeliberationError):
    """Configuration or environment errors

    Examples:
    - Invalid environment variable value
    - Inconsistent threshold settings
    """

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        context = {}
        if config_key:
            context['config_key'] = config_key
        super().__init__(message, context)


# ========== Validation Errors ==========


class ValidationError(DeliberationError):
    """Data validation failures

    Examples:
    - Negative user or note id in a rating
    - Non-positive or non-finite learning rate
    - Unknown raw vote value
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        self.field = field
        self.value = value

        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)

        super().__init__(message, context)


# ========== Training Errors ==========


class TrainingCancelledError(DeliberationError):
    """Matrix factorization training was cancelled before completion

    Parameters are discarded; no partial result is returned.
    """

    def __init__(self, message: str, learning_rate: Optional[float] = None, step: Optional[int] = None):
        self.learning_rate = learning_rate
        self.step = step

        context = {}
        if learning_rate is not None:
            context['learning_rate'] = learning_rate
        if step is not None:
            context['step'] = step

        super().__init__(message, context)
