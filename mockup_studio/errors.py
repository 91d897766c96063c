"""
Error handling for Mockup Studio.

Provides specific exception types for each failure mode of the
compositing pipeline and the environment adapters, with enough
context for debugging and for the HTTP layer to build a response.
"""

from typing import Dict, List, Optional, Any


class MockupStudioError(Exception):
    """Base exception for all Mockup Studio errors."""

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ValidationError(MockupStudioError):
    """Raised when user input validation fails."""
    pass


class ConfigurationError(MockupStudioError):
    """Raised when configuration is invalid or missing."""
    pass


class ProcessingError(MockupStudioError):
    """Raised when the compositing pipeline fails."""
    pass


class RenderError(ProcessingError):
    """Raised when frame or mat rendering fails."""
    pass


class CompositeError(RenderError):
    """Raised when image compositing fails."""
    pass


class EnvironmentSourceError(MockupStudioError):
    """Raised when an environment cannot be acquired."""
    pass


# Specific error classes for the pipeline failure modes

class InvalidDimension(ValidationError):
    """Raised when a declared artwork size is non-positive or unparseable."""

    def __init__(self, reason: str, width: Any = None, height: Any = None, unit: Any = None):
        super().__init__(
            f"Invalid artwork dimensions: {reason}",
            details={
                'width': width,
                'height': height,
                'unit': unit
            },
            suggestions=[
                "Enter a width and height greater than zero",
                "Use 'in' or 'cm' as the unit"
            ]
        )


class UnsupportedFrameStyle(RenderError):
    """Raised when a frame style is not part of the frame catalog."""

    def __init__(self, style: Any, reason: Optional[str] = None):
        message = f"Unsupported frame style: {style}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            details={'frame_style': str(style)},
            suggestions=["Choose one of the frame styles offered by the studio"]
        )


class UnsupportedMatOption(RenderError):
    """Raised when a mat option is not part of the mat catalog."""

    def __init__(self, option: Any):
        super().__init__(
            f"Unsupported mat option: {option}",
            details={'mat_option': str(option)},
            suggestions=["Use one of: none, white, cream, black, grey"]
        )


class AssetDecodeFailure(ValidationError):
    """Raised when an input raster is corrupt or in an unsupported format."""

    def __init__(self, asset_name: str, reason: str, detected_format: str = None):
        super().__init__(
            f"Could not decode {asset_name}: {reason}",
            details={
                'asset': asset_name,
                'detected_format': detected_format
            },
            suggestions=[
                "Upload a PNG, JPEG or WebP image",
                "Ensure the file is not corrupted or truncated"
            ]
        )


class FileTooLargeError(ValidationError):
    """Raised when an uploaded file exceeds the size limit."""

    def __init__(self, filename: str, size_mb: float, limit_mb: float):
        super().__init__(
            f"File too large: {filename} ({size_mb:.1f}MB exceeds {limit_mb:.1f}MB limit)",
            details={
                'filename': filename,
                'size_mb': size_mb,
                'limit_mb': limit_mb
            },
            suggestions=[
                f"Reduce file size to under {limit_mb:.1f}MB",
                "Export the image at a lower resolution"
            ]
        )


class EncodingFailure(CompositeError):
    """Raised when the final mockup cannot be serialized."""

    def __init__(self, output_format: str, reason: str):
        super().__init__(
            f"Failed to encode mockup as {output_format}: {reason}",
            details={'output_format': output_format}
        )


class PipelineCancelled(ProcessingError):
    """Raised when the owning request is aborted between pipeline stages."""

    def __init__(self, stage: str, request_id: str = None):
        super().__init__(
            f"Mockup request cancelled before stage: {stage}",
            details={
                'stage': stage,
                'request_id': request_id
            }
        )
        self.stage = stage


class EnvironmentNotFound(EnvironmentSourceError):
    """Raised when a template environment or its image is missing."""

    def __init__(self, template_id: str, asset_path: str = None):
        super().__init__(
            f"Environment template not found: {template_id}",
            details={
                'template_id': template_id,
                'expected_path': asset_path
            },
            suggestions=[
                "Check the environments.yaml template catalog",
                "Verify the templates directory path in settings.yaml"
            ]
        )


class EnvironmentGenerationError(EnvironmentSourceError):
    """Raised when the image-generation service does not return an environment."""

    def __init__(self, reason: str, attempts: int = 1):
        super().__init__(
            f"Environment generation failed after {attempts} attempt(s): {reason}",
            details={'attempts': attempts},
            suggestions=[
                "Try a shorter or simpler environment description",
                "Pick a template environment instead"
            ]
        )


def http_status_for(error: Exception) -> int:
    """Map an error kind to the HTTP status the web layer responds with."""
    if isinstance(error, FileTooLargeError):
        return 413
    if isinstance(error, (ValidationError, UnsupportedFrameStyle, UnsupportedMatOption)):
        return 400
    if isinstance(error, EnvironmentNotFound):
        return 404
    if isinstance(error, EnvironmentGenerationError):
        return 502
    if isinstance(error, PipelineCancelled):
        return 503
    return 500
