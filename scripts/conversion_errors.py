"""
Error types raised while converting Mermaid diagrams to Excalidraw scenes.
"""

from pathlib import Path
from typing import Optional


class ConversionError(Exception):
    """Base class for every failure the CLI reports with exit code 1."""


class UsageError(ConversionError):
    pass


class UnknownOptionError(UsageError):
    def __init__(self, token: str):
        super().__init__(f"Unknown option: {token}")
        self.token = token


class MissingInputError(UsageError):
    def __init__(self):
        super().__init__("Missing input path.")


class InvalidInputError(ConversionError):
    pass


class BridgeServeError(ConversionError):
    """An asset could not be served; surfaced to the page as 404/500."""


class BridgeTimeoutError(ConversionError):
    pass


class RemoteEvaluationError(ConversionError):
    def __init__(self, message: str, input_path: Optional[Path] = None):
        if input_path is not None:
            message = f"{input_path}: {message}"
        super().__init__(message)
        self.input_path = input_path


class FileSystemError(ConversionError):
    def __init__(self, action: str, path: Path, cause: OSError):
        super().__init__(f"Failed to {action} {path}: {cause.strerror or cause}")
        self.path = path
