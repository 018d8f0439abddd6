"""Idempotent deployment of libraries, plain contracts and proxy pairs."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .artifacts import ArtifactStore
from .constants import ERC1967_PROXY, PriceTier
from .exceptions import DeploymentError, StateInconsistencyError, StateWriteError
from .executor import SubmitOptions, TransactionExecutor
from .introspection import ChainInspector
from .linker import is_linked, library_refs, link
from .state import DeploymentStateStore
from .types import (
    ContractArtifact,
    DeployAction,
    DeployError,
    DeployResult,
    InvokeAction,
    TransactionOutcome,
)

logger = logging.getLogger(__name__)

INITIALIZER = "initialize"


@dataclass
class DeploymentContext:
    """Collaborators shared by every deployment of one network run."""

    network: str
    executor: TransactionExecutor
    store: DeploymentStateStore
    artifacts: ArtifactStore
    inspector: Optional[ChainInspector] = None


@dataclass(frozen=True)
class DeployOptions:
    """
    Per-deployment options.

    Attributes:
        force: Redeploy even when the record already has an address
        libraries: Library name to address, for linking
        price_tier: Overrides the executor's default price tier
        record_as: Record key, when it differs from the artifact name
    """

    force: bool = False
    libraries: Optional[Dict[str, str]] = None
    price_tier: Optional[PriceTier] = None
    record_as: Optional[str] = None


class ContractDeployer:
    """
    Deploys contracts through the transaction executor and records them.

    A contract already in the record is not redeployed unless `force` is
    set. Failures are returned as DeployResult(success=False); only a state
    write failure after a live deployment raises.
    """

    def __init__(self, context: DeploymentContext):
        self.ctx = context

    @property
    def network(self) -> str:
        return self.ctx.network

    def _submit_options(self, options: DeployOptions) -> SubmitOptions:
        return SubmitOptions(price_tier=options.price_tier)

    def _failure(
        self, name: str, message: str, transaction_hash: Optional[str] = None, transient: bool = False
    ) -> DeployResult:
        logger.error("Deployment of %s on %s failed: %s", name, self.network, message)
        return DeployResult(
            success=False,
            contract_name=name,
            transaction_hash=transaction_hash,
            error=DeployError(
                message=message, contract_name=name, transaction_hash=transaction_hash, transient=transient
            ),
        )

    def _has_live_code(self, name: str, address: str) -> bool:
        if self.ctx.inspector is None:
            return True
        try:
            return self.ctx.inspector.has_code(address)
        except (RuntimeError, ValueError) as e:
            logger.warning("Could not verify code of %s at %s, trusting the record: %s", name, address, e)
            return True

    def _existing(self, key: str, upgradeable: bool, options: DeployOptions) -> Optional[DeployResult]:
        """
        Return an already_deployed result if `key` is recorded and live.

        A recorded address with no code is treated as stale (a reset chain)
        and ignored. A recorded proxy with no implementation entry gets its
        implementation read from the EIP-1967 slot.
        """
        if options.force:
            return None

        record = self.ctx.store.load(self.network)
        address = record.contracts.get(key)
        if not address:
            return None

        if not self._has_live_code(key, address):
            logger.warning(
                "Recorded address of %s on %s has no code (%s), redeploying", key, self.network, address
            )
            return None

        implementation = record.implementations.get(key)
        if upgradeable and implementation is None and self.ctx.inspector is not None:
            try:
                implementation = self.ctx.inspector.implementation_address(address)
            except (RuntimeError, ValueError) as e:
                logger.warning("Could not read implementation slot of %s: %s", key, e)
            if implementation:
                logger.info("Discovered implementation of %s at %s", key, implementation)
                self._record(key, contracts={key: address}, implementations={key: implementation})

        logger.info("%s already deployed on %s at %s", key, self.network, address)
        return DeployResult(
            success=True,
            contract_name=key,
            address=address,
            implementation_address=implementation,
            already_deployed=True,
        )

    def _record(self, key: str, **entries: Dict[str, str]) -> None:
        try:
            self.ctx.store.merge(self.network, **entries)
        except (StateWriteError, StateInconsistencyError):
            logger.error(
                "%s deployed but not recorded on %s: %s. Add it to the record before rerunning.",
                key,
                self.network,
                entries,
            )
            raise

    def _linked_bytecode(self, artifact: ContractArtifact, libraries: Optional[Dict[str, str]]) -> str:
        refs = library_refs(artifact.link_references)
        if not refs:
            return artifact.bytecode
        bytecode = link(artifact.bytecode, refs, libraries or {})
        if not is_linked(bytecode):
            logger.warning("%s still has unresolved library placeholders after linking", artifact.name)
        return bytecode

    def _create(
        self,
        artifact: ContractArtifact,
        args: Sequence[Any],
        options: DeployOptions,
    ) -> TransactionOutcome:
        bytecode = self._linked_bytecode(artifact, options.libraries)
        action = DeployAction(
            contract_name=artifact.name,
            abi=artifact.abi,
            bytecode=bytecode,
            args=tuple(args),
        )
        return self.ctx.executor.submit(action, self._submit_options(options))

    def _creation_error(self, outcome: TransactionOutcome) -> Optional[str]:
        if not outcome.confirmed:
            return outcome.error or f"transaction {outcome.status.value}"
        if not outcome.contract_address:
            return "receipt has no contract address"
        return None

    def deploy_library(self, name: str, options: Optional[DeployOptions] = None) -> DeployResult:
        """Deploy a library. Same as a plain contract with no constructor arguments."""
        return self.deploy_contract(name, (), options)

    def deploy_contract(
        self,
        name: str,
        ctor_args: Sequence[Any] = (),
        options: Optional[DeployOptions] = None,
    ) -> DeployResult:
        """
        Deploy a non-upgradeable contract.

        Args:
            name: Artifact name
            ctor_args: Constructor arguments
            options: DeployOptions

        Returns:
            DeployResult with the contract address

        Raises:
            StateWriteError, StateInconsistencyError: If the contract was deployed but could not be recorded
        """
        options = options or DeployOptions()
        key = options.record_as or name

        existing = self._existing(key, upgradeable=False, options=options)
        if existing is not None:
            return existing

        try:
            artifact = self.ctx.artifacts.get(name)
            outcome = self._create(artifact, ctor_args, options)
        except DeploymentError as e:
            return self._failure(key, str(e))

        error = self._creation_error(outcome)
        if error:
            return self._failure(key, error, outcome.hash, outcome.transient)

        self._record(key, contracts={key: outcome.contract_address})
        logger.info("Deployed %s on %s at %s", key, self.network, outcome.contract_address)
        return DeployResult(
            success=True,
            contract_name=key,
            address=outcome.contract_address,
            transaction_hash=outcome.hash,
        )

    def deploy_upgradeable(
        self,
        name: str,
        init_args: Sequence[Any] = (),
        options: Optional[DeployOptions] = None,
    ) -> DeployResult:
        """
        Deploy an implementation behind an ERC1967 proxy and initialize it.

        The record is only updated once implementation, proxy and
        initializer have all succeeded.

        Args:
            name: Implementation artifact name
            init_args: Arguments of `initialize`
            options: DeployOptions

        Returns:
            DeployResult with the proxy address and implementation address

        Raises:
            StateWriteError, StateInconsistencyError: If the pair was deployed but could not be recorded
        """
        options = options or DeployOptions()
        key = options.record_as or name

        existing = self._existing(key, upgradeable=True, options=options)
        if existing is not None:
            return existing

        try:
            artifact = self.ctx.artifacts.get(name)
            proxy_artifact = self.ctx.artifacts.get(ERC1967_PROXY)
        except DeploymentError as e:
            return self._failure(key, str(e))

        try:
            outcome = self._create(artifact, (), options)
        except DeploymentError as e:
            return self._failure(key, str(e))
        error = self._creation_error(outcome)
        if error:
            return self._failure(key, f"implementation: {error}", outcome.hash, outcome.transient)
        implementation = outcome.contract_address

        outcome = self._create(
            proxy_artifact, (implementation, b""), DeployOptions(price_tier=options.price_tier)
        )
        error = self._creation_error(outcome)
        if error:
            return self._failure(key, f"proxy: {error}", outcome.hash, outcome.transient)
        proxy = outcome.contract_address

        init = self.ctx.executor.submit(
            InvokeAction(address=proxy, abi=artifact.abi, method=INITIALIZER, args=tuple(init_args), name=key),
            self._submit_options(options),
        )
        if not init.confirmed:
            return self._failure(key, f"initialize: {init.error or init.status.value}", init.hash, init.transient)

        self._record(key, contracts={key: proxy}, implementations={key: implementation})
        logger.info("Deployed %s on %s at %s (implementation %s)", key, self.network, proxy, implementation)
        return DeployResult(
            success=True,
            contract_name=key,
            address=proxy,
            implementation_address=implementation,
            transaction_hash=init.hash,
        )

    def invoke(
        self,
        label: str,
        address: str,
        abi: List[Dict[str, Any]],
        method: str,
        args: Sequence[Any] = (),
        options: Optional[DeployOptions] = None,
    ) -> TransactionOutcome:
        """Send a state-changing call to a deployed contract."""
        options = options or DeployOptions()
        action = InvokeAction(address=address, abi=abi, method=method, args=tuple(args), name=label)
        return self.ctx.executor.submit(action, self._submit_options(options))
