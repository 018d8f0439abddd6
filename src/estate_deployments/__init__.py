"""
estate-deployments: resumable deployment and role bootstrap for the real-estate tokenization system
"""

from importlib.metadata import PackageNotFoundError, version

from .artifacts import ArtifactStore, InMemoryArtifactStore
from .config import ExecutorSettings
from .constants import ContractSlot, PriceTier, Role
from .deployer import ContractDeployer, DeploymentContext, DeployOptions
from .exceptions import (
    ArtifactNotFoundError,
    ConfigurationError,
    DeploymentError,
    InvalidAddressError,
    MissingDependencyError,
    MissingLibraryAddressError,
    PermanentTransactionError,
    RetryExhaustedError,
    RoleHierarchyError,
    StateInconsistencyError,
    StateWriteError,
    TransactionError,
    TransientTransactionError,
    UnauthorizedRecoveryError,
)
from .executor import TransactionExecutor
from .introspection import ChainInspector
from .ledger import Ledger, Web3Ledger
from .orchestrator import SystemDeployer
from .roles import RoleBootstrap, RoleConfig, RoleValidator, load_role_config
from .state import DeploymentStateStore, FileStateBackend
from .types import DeploymentRecord, DeploymentResult, DeployResult, TransactionOutcome, TransactionStatus

try:
    __version__ = version("estate-deployments")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "SystemDeployer",
    "ContractDeployer",
    "DeploymentContext",
    "DeployOptions",
    "TransactionExecutor",
    "ExecutorSettings",
    "Ledger",
    "Web3Ledger",
    "ChainInspector",
    "DeploymentStateStore",
    "FileStateBackend",
    "ArtifactStore",
    "InMemoryArtifactStore",
    "RoleValidator",
    "RoleBootstrap",
    "RoleConfig",
    "load_role_config",
    "ContractSlot",
    "PriceTier",
    "Role",
    "DeploymentRecord",
    "DeploymentResult",
    "DeployResult",
    "TransactionOutcome",
    "TransactionStatus",
    "DeploymentError",
    "ConfigurationError",
    "ArtifactNotFoundError",
    "TransactionError",
    "TransientTransactionError",
    "PermanentTransactionError",
    "RetryExhaustedError",
    "MissingLibraryAddressError",
    "InvalidAddressError",
    "MissingDependencyError",
    "StateWriteError",
    "StateInconsistencyError",
    "RoleHierarchyError",
    "UnauthorizedRecoveryError",
]
