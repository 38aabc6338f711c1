"""Custom Exceptions for the AudioScribe application."""

class AudioScribeError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(AudioScribeError):
    """Exception raised for errors in configuration loading."""
    pass

class FileSystemError(AudioScribeError):
    """Exception raised for file system related errors (permissions, not a directory etc)."""
    pass

class EngineUnavailableError(AudioScribeError):
    """The recognition engine cannot run on this platform. Fatal for the whole run."""
    pass

# Item-scoped errors. The queue records these as a failed status and moves on.

class InputNotFoundError(AudioScribeError):
    """Exception raised when the audio file to transcribe does not exist."""
    pass

class LocaleUnsupportedError(AudioScribeError):
    """Exception raised when the engine has no model for the requested locale."""
    pass

class ModelProvisioningError(AudioScribeError):
    """Exception raised when the speech model cannot be downloaded or loaded."""
    pass

class AnalysisError(AudioScribeError):
    """Exception raised for errors while the engine analyzes the audio."""
    pass

class EmptyTranscriptionError(AudioScribeError):
    """Exception raised when analysis finished without any recognized text."""
    pass

class OutputWriteError(AudioScribeError):
    """Exception raised when the transcript cannot be written to disk."""
    pass

class InvalidTransitionError(ValueError):
    """Raised when a work item is moved to a status its current status cannot reach."""
    pass
