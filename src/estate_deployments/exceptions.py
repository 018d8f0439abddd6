"""Custom exception classes for estate-deployments library."""

from typing import Iterable, Optional


class DeploymentError(Exception):
    """Base exception for deployment-related errors."""

    pass


class ConfigurationError(DeploymentError, ValueError):
    """Raised when deployment or role configuration is invalid."""

    pass


class ArtifactNotFoundError(DeploymentError, FileNotFoundError):
    """Raised when a compiled contract artifact cannot be located."""

    pass


class TransactionError(DeploymentError):
    """Base exception for failures of a single ledger call."""

    def __init__(self, message: str, transaction_hash: Optional[str] = None):
        super().__init__(message)
        self.transaction_hash = transaction_hash


class TransientTransactionError(TransactionError):
    """Raised for failures worth retrying (timeouts, nonce contention)."""

    pass


class PermanentTransactionError(TransactionError):
    """Raised for failures that will not succeed on retry (reverts, bad args)."""

    pass


class RetryExhaustedError(DeploymentError):
    """Raised when every attempt of a retried call failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class MissingLibraryAddressError(DeploymentError, ValueError):
    """Raised when bytecode references a library with no resolved address."""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(f"No address resolved for libraries: {', '.join(self.missing)}")


class InvalidAddressError(DeploymentError, ValueError):
    """Raised when a value is not a 20-byte hex address."""

    pass


class MissingDependencyError(DeploymentError):
    """Raised when a step runs before the contracts it depends on are recorded."""

    pass


class StateWriteError(DeploymentError, OSError):
    """Raised when the deployment record cannot be persisted."""

    pass


class StateInconsistencyError(DeploymentError, ValueError):
    """Raised when a record update would break the record's invariants."""

    pass


class RoleHierarchyError(DeploymentError, ValueError):
    """Raised when a requested role edge is outside the configured hierarchy."""

    pass


class UnauthorizedRecoveryError(DeploymentError, PermissionError):
    """Raised when emergency recovery is attempted by a non-recovery principal."""

    pass
