"""Data types and dataclasses for estate-deployments library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from .constants import Role


class TransactionStatus(Enum):
    """Lifecycle of a submitted call. Every status but PENDING is terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    FAILED = "failed"  # never reached the ledger


@dataclass(frozen=True)
class DeployAction:
    """Create a contract from bytecode with constructor arguments."""

    contract_name: str
    abi: List[Dict[str, Any]]
    bytecode: str
    args: tuple = ()

    @property
    def label(self) -> str:
        return f"deploy:{self.contract_name}"


@dataclass(frozen=True)
class InvokeAction:
    """Call a state-changing method on a deployed contract."""

    address: str
    abi: List[Dict[str, Any]]
    method: str
    args: tuple = ()
    name: Optional[str] = None  # human-readable target, for logs

    @property
    def label(self) -> str:
        return f"invoke:{self.name or self.address}.{self.method}"


Action = Union[DeployAction, InvokeAction]


@dataclass
class TransactionOutcome:
    """Result of submitting one action through the transaction executor."""

    status: TransactionStatus
    hash: Optional[str] = None
    block_number: Optional[int] = None
    resource_used: Optional[int] = None  # gas used
    contract_address: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    transient: bool = False

    @property
    def confirmed(self) -> bool:
        return self.status is TransactionStatus.CONFIRMED


@dataclass
class DeploymentRecord:
    """Per-network record of deployed addresses."""

    network: str
    contracts: Dict[str, str] = field(default_factory=dict)  # name -> proxy or plain address
    implementations: Dict[str, str] = field(default_factory=dict)  # name -> implementation
    actions: Dict[str, str] = field(default_factory=dict)  # write-only step key -> tx hash
    updated_at: Optional[str] = None

    @classmethod
    def empty(cls, network: str) -> "DeploymentRecord":
        return cls(network=network)

    @classmethod
    def from_dict(cls, network: str, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            network=data.get("network", network),
            contracts=dict(data.get("contracts") or {}),
            implementations=dict(data.get("implementations") or {}),
            actions=dict(data.get("actions") or {}),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "updated_at": self.updated_at,
            "contracts": dict(self.contracts),
            "implementations": dict(self.implementations),
            "actions": dict(self.actions),
        }

    def is_empty(self) -> bool:
        return not (self.contracts or self.implementations or self.actions)


@dataclass
class DeployError:
    """Structured failure returned by the contract deployer."""

    message: str
    contract_name: str
    transaction_hash: Optional[str] = None
    transient: bool = False


@dataclass
class DeployResult:
    """Outcome of deploying one logical unit."""

    success: bool
    contract_name: str
    address: Optional[str] = None
    implementation_address: Optional[str] = None
    already_deployed: bool = False
    transaction_hash: Optional[str] = None
    error: Optional[DeployError] = None


@dataclass(frozen=True)
class ContractArtifact:
    """Compiled contract as read from a Hardhat-style artifact file."""

    name: str
    abi: List[Dict[str, Any]]
    bytecode: str
    link_references: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    source_name: Optional[str] = None


class OrchestratorState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StepReport:
    """What happened to a single step during a run."""

    index: int
    name: str
    address: Optional[str] = None
    already_deployed: bool = False
    transaction_hash: Optional[str] = None


@dataclass
class ProgressEvent:
    step_index: int
    contract_name: str
    address: Optional[str]
    timestamp: str
    already_deployed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepIndex": self.step_index,
            "contractName": self.contract_name,
            "address": self.address,
            "timestamp": self.timestamp,
            "alreadyDeployed": self.already_deployed,
        }


@dataclass
class DeploymentResult:
    """Result of an orchestrator run, as exposed to CLIs and test harnesses."""

    success: bool
    state: OrchestratorState
    network: str
    contract_addresses: Dict[str, str] = field(default_factory=dict)
    implementation_addresses: Dict[str, str] = field(default_factory=dict)
    failed_step: Optional[int] = None
    failed_step_name: Optional[str] = None
    error: Optional[str] = None
    steps: List[StepReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "state": self.state.value,
            "network": self.network,
            "contractAddresses": dict(self.contract_addresses),
            "implementationAddresses": dict(self.implementation_addresses),
            "steps": [
                {
                    "index": s.index,
                    "name": s.name,
                    "address": s.address,
                    "alreadyDeployed": s.already_deployed,
                    "transactionHash": s.transaction_hash,
                }
                for s in self.steps
            ],
        }
        if not self.success:
            out["failedStep"] = self.failed_step
            out["failedStepName"] = self.failed_step_name
            out["error"] = self.error
        return out


@dataclass
class RoleDescriptor:
    """On-chain view of a role: its id, its admin role id and known members."""

    role: Role
    role_id: bytes
    admin_role_id: bytes
    members: Set[str] = field(default_factory=set)
