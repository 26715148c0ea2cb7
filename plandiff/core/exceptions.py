"""Custom exceptions for the application."""

class ApplicationError(Exception):
    """Base application error."""
    pass

class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass

class AnalysisError(ApplicationError):
    """A drawing comparison run failed."""
    pass

class ImageLoadError(AnalysisError):
    """An input image is missing or cannot be decoded."""
    pass

class AnalysisCancelled(ApplicationError):
    """The run was stopped through its cancellation token.

    Not an AnalysisError: callers treat it as "no result, user-initiated stop".
    """
    pass

class ServiceError(ApplicationError):
    """Service operation errors."""
    pass

class AIServiceError(ServiceError):
    """AI service specific errors."""
    pass

class AnnotationParseError(AIServiceError):
    """The annotation service returned output that is not a candidate list."""
    pass
