"""
Exception hierarchy for the local invocation harness.
"""
from typing import Optional


class LambdaOfflineError(Exception):
    """Base class for errors surfaced to callers of the harness."""


class ConfigurationError(LambdaOfflineError):
    pass


class CredentialAcquisitionError(LambdaOfflineError):
    """Raised when short-term session credentials cannot be obtained."""

    def __init__(self, profile: str, message: str):
        super().__init__(f"Unable to acquire session credentials for profile '{profile}': {message}")
        self.profile = profile


class ToolchainError(LambdaOfflineError):
    """Raised when the Go toolchain is missing or one of its helper commands fails."""


class HandlerProcessError(LambdaOfflineError):
    """
    Raised when the handler process writes to stderr or exits non-zero.
    The message is the raw stderr text so it reads like the toolchain's own output.
    """

    def __init__(self, stderr: str, stdout: str = "", returncode: Optional[int] = None):
        message = stderr or f"Handler process exited with status {returncode}"
        super().__init__(message)
        self.stderr = stderr
        self.stdout = stdout
        self.returncode = returncode
