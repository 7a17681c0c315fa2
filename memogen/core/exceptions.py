"""Core custom exceptions for the application."""


class PipelineError(Exception):
    """Base exception for pipeline-related errors."""


class ConfigurationError(PipelineError):
    """Exception for configuration-related errors (e.g., missing prompt templates, invalid settings)."""


class JobValidationError(PipelineError):
    """Raised when a job request is rejected before any generation work starts."""


class NotFoundError(PipelineError):
    """Raised when a template, section or document id cannot be resolved."""
