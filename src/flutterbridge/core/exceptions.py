"""FlutterBridge exception hierarchy."""

from __future__ import annotations


class FlutterBridgeError(Exception):
    """Base exception for all FlutterBridge errors."""


class ConfigError(FlutterBridgeError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class SessionError(FlutterBridgeError):
    """Raised when session management fails."""


class SessionNotFoundError(SessionError):
    """Raised when a session_id is not in the registry."""


class SessionLimitError(SessionError):
    """Raised when the configured maximum number of sessions is reached."""


class PathValidationError(FlutterBridgeError):
    """Raised when a project path fails validation."""


class PathTraversalError(PathValidationError):
    """Raised when a path resolves outside the configured base path."""


class AccessDeniedError(PathValidationError):
    """Raised when a resolved path is outside the allowed path prefix."""


class ProjectValidationError(PathValidationError):
    """Raised when a path is not an existing Flutter project directory."""


class ProcessError(FlutterBridgeError):
    """Raised when a Flutter process operation fails."""


class ProcessConflictError(ProcessError):
    """Raised when a run is requested while one is already active."""


class NoProcessError(ProcessError):
    """Raised when a control operation targets a session without a process."""


class TestReferenceNotFoundError(FlutterBridgeError):
    """Raised when a test run reference is unknown to every session."""

    __test__ = False  # not a pytest test class


class SimulatorError(FlutterBridgeError):
    """Raised when a simctl or idb invocation fails."""


class SimulatorNotStartedError(SimulatorError):
    """Raised when a UI operation targets a session without a simulator."""

