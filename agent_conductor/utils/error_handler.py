"""
Centralized error handling with structured error details and retry logic.
"""

import asyncio
import random
import uuid
from typing import Callable, Any, Dict, Optional, Type, Tuple, List

from ..models.errors import (
    ErrorDetails, ErrorResponse, ErrorCategory, ErrorSeverity,
    AgentConductorError
)
from .logging import get_logger


class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 2.0,
        jitter: bool = True
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay


class ErrorHandler:
    """Centralized error handling system."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.error_stats: Dict[str, Dict[str, int]] = {}

    async def with_retry(
        self,
        operation: Callable,
        retry_config: Optional[RetryConfig] = None,
        error_types: Tuple[Type[Exception], ...] = (Exception,),
        context: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Execute operation with exponential backoff retry."""
        config = retry_config or RetryConfig()
        context = context or {}

        for attempt in range(config.max_retries + 1):
            try:
                if asyncio.iscoroutinefunction(operation):
                    return await operation()
                return operation()
            except error_types as e:
                if attempt == config.max_retries:
                    error_details = self._create_error_details(e, context)
                    self._log_error(error_details)
                    raise

                delay = config.delay_for(attempt)
                self.logger.warning(
                    f"Operation failed (attempt {attempt + 1}/{config.max_retries + 1}). "
                    f"Retrying in {delay:.2f}s. Error: {str(e)}"
                )
                await asyncio.sleep(delay)

    def handle_agent_error(
        self,
        agent_name: str,
        error: Exception,
        task_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorResponse:
        """Handle errors from agents with a standardized response."""
        context = dict(context or {})
        context.update({
            "agent_name": agent_name,
            "task_id": task_id
        })

        error_details = self._create_error_details(error, context, agent_name=agent_name)
        self._log_error(error_details)
        self._update_error_stats(agent_name, error_details.category.value)

        return ErrorResponse(
            error=error_details,
            suggested_actions=self._get_recovery_strategies(error_details)
        )

    def _create_error_details(
        self,
        error: Exception,
        context: Dict[str, Any],
        agent_name: Optional[str] = None
    ) -> ErrorDetails:
        """Create standardized error details."""
        if isinstance(error, AgentConductorError):
            code = error.code
            category = error.category
            severity = error.severity
            message = error.message
        else:
            code = "HANDLER_EXCEPTION"
            category = self._classify_error(error)
            severity = self._determine_severity(category)
            message = str(error) or type(error).__name__

        return ErrorDetails(
            error_id=str(uuid.uuid4()),
            code=code,
            category=category,
            severity=severity,
            message=message,
            details=f"{type(error).__name__}: {str(error)}",
            context=context,
            agent_name=agent_name,
            task_id=context.get("task_id"),
            recoverable=category != ErrorCategory.VALIDATION
        )

    def _classify_error(self, error: Exception) -> ErrorCategory:
        """Classify error into appropriate category."""
        error_type = type(error).__name__.lower()

        if "timeout" in error_type:
            return ErrorCategory.TIMEOUT
        elif any(keyword in error_type for keyword in ["validation", "value", "type", "key"]):
            return ErrorCategory.VALIDATION
        elif any(keyword in error_type for keyword in ["connection", "http", "api", "request"]):
            return ErrorCategory.EXTERNAL_API
        else:
            return ErrorCategory.SYSTEM

    def _determine_severity(self, category: ErrorCategory) -> ErrorSeverity:
        """Determine error severity based on category."""
        if category == ErrorCategory.VALIDATION:
            return ErrorSeverity.HIGH
        elif category in [ErrorCategory.EXTERNAL_API, ErrorCategory.TIMEOUT]:
            return ErrorSeverity.MEDIUM
        else:
            return ErrorSeverity.LOW

    def _get_recovery_strategies(self, error_details: ErrorDetails) -> List[str]:
        """Get suggested recovery strategies for error."""
        if error_details.category == ErrorCategory.TIMEOUT:
            return [
                "Retry the command later",
                "Increase task_timeout_seconds if the worker is known to be slow"
            ]
        elif error_details.category == ErrorCategory.EXTERNAL_API:
            return [
                "Check the completion service endpoint and credentials",
                "Verify API rate limits"
            ]
        elif error_details.category == ErrorCategory.VALIDATION:
            return [
                "Validate the command and context payload",
                "Check required fields"
            ]
        elif error_details.category == ErrorCategory.DISPATCH:
            return [
                "Check registry status for active workers"
            ]
        return []

    def _log_error(self, error_details: ErrorDetails):
        """Log error with appropriate level."""
        log_message = (
            f"Error {error_details.error_id}: {error_details.message} "
            f"[{error_details.category.value}/{error_details.severity.value}]"
        )

        if error_details.agent_name:
            log_message += f" Agent: {error_details.agent_name}"

        if error_details.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(log_message, code=error_details.code)
        elif error_details.severity == ErrorSeverity.HIGH:
            self.logger.error(log_message, code=error_details.code)
        elif error_details.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(log_message, code=error_details.code)
        else:
            self.logger.info(log_message, code=error_details.code)

    def _update_error_stats(self, agent_name: str, category: str):
        """Update error statistics."""
        agent_stats = self.error_stats.setdefault(agent_name, {})
        agent_stats[category] = agent_stats.get(category, 0) + 1

    def get_error_stats(self) -> Dict[str, Dict[str, int]]:
        """Get current error statistics."""
        return {name: dict(stats) for name, stats in self.error_stats.items()}

    def reset_error_stats(self):
        """Reset error statistics."""
        self.error_stats.clear()
