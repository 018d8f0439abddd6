"""Resumable, ordered deployment of the whole system."""

import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Tuple

from .constants import LIBRARY_SLOTS, MANAGER_SLOTS, ContractSlot, PriceTier
from .deployer import ContractDeployer, DeploymentContext, DeployOptions
from .exceptions import (
    DeploymentError,
    MissingDependencyError,
    RetryExhaustedError,
    TransientTransactionError,
)
from .progress import ProgressCallback, make_event
from .retry import RetryPolicy, retry_call
from .roles import RoleBootstrap, RoleConfig, RoleValidator
from .types import DeploymentRecord, DeploymentResult, DeployResult, OrchestratorState, StepReport

logger = logging.getLogger(__name__)

ROLE_PHASE_NAME = "bootstrap-roles"


@dataclass(frozen=True)
class StepOutcome:
    success: bool
    address: Optional[str] = None
    already_deployed: bool = False
    transaction_hash: Optional[str] = None
    error: Optional[str] = None
    transient: bool = False


@dataclass(frozen=True)
class DeploymentStep:
    """
    One numbered step of the sequence.

    Deployment steps own a contract slot; write-only steps (authorize,
    configure) are tracked by name in the record's `actions`.
    """

    index: int
    name: str
    depends_on: Tuple[ContractSlot, ...]
    run: Callable[[DeploymentRecord], StepOutcome]
    slot: Optional[ContractSlot] = None

    def is_complete(self, record: DeploymentRecord) -> bool:
        if self.slot is not None:
            return self.slot.value in record.contracts
        return self.name in record.actions


def _from_deploy_result(result: DeployResult) -> StepOutcome:
    if result.success:
        return StepOutcome(
            success=True,
            address=result.address,
            already_deployed=result.already_deployed,
            transaction_hash=result.transaction_hash,
        )
    return StepOutcome(
        success=False,
        transaction_hash=result.transaction_hash,
        error=result.error.message if result.error else "deployment failed",
        transient=bool(result.error and result.error.transient),
    )


class SystemDeployer:
    """
    Runs the fixed deployment sequence against one network.

    The record is reloaded before every step, so a run interrupted at any
    point can be restarted and skips whatever already completed. Runs
    against the same state directory must not overlap.
    """

    def __init__(
        self,
        context: DeploymentContext,
        recovery_admin: Optional[str] = None,
        force: bool = False,
        price_tier: Optional[PriceTier] = None,
        on_progress: Optional[ProgressCallback] = None,
        step_attempts: int = 1,
        step_retry_delay_s: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ctx = context
        self.deployer = ContractDeployer(context)
        self.recovery_admin = recovery_admin or context.executor.sender
        self.force = force
        self.price_tier = price_tier
        self.on_progress = on_progress
        self.step_policy = RetryPolicy(max_attempts=step_attempts, delay_s=step_retry_delay_s)
        self._sleep = sleep
        self._state = OrchestratorState.NOT_STARTED
        self._current_step: Optional[int] = None
        self._steps = self._build_steps()

    @property
    def network(self) -> str:
        return self.ctx.network

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def current_step(self) -> Optional[int]:
        return self._current_step

    @property
    def steps(self) -> List[DeploymentStep]:
        return list(self._steps)

    def _options(self, **kwargs) -> DeployOptions:
        return DeployOptions(force=self.force, price_tier=self.price_tier, **kwargs)

    def _build_steps(self) -> List[DeploymentStep]:
        S = ContractSlot
        specs = [
            ("library", S.LIB1, ()),
            ("library", S.LIB2, ()),
            ("upgradeable", S.SYSTEM, LIBRARY_SLOTS),
            ("upgradeable", S.PROPERTY_MANAGER, (S.SYSTEM,)),
            ("upgradeable", S.TRADING_MANAGER, (S.SYSTEM,)),
            ("upgradeable", S.REWARD_MANAGER, (S.SYSTEM,)),
            ("authorize", S.PROPERTY_MANAGER, (S.SYSTEM, S.PROPERTY_MANAGER)),
            ("authorize", S.TRADING_MANAGER, (S.SYSTEM, S.TRADING_MANAGER)),
            ("authorize", S.REWARD_MANAGER, (S.SYSTEM, S.REWARD_MANAGER)),
            ("contract", S.TOKEN_IMPLEMENTATION, ()),
            ("configure", S.TOKEN_IMPLEMENTATION, (S.PROPERTY_MANAGER, S.TOKEN_IMPLEMENTATION)),
            ("upgradeable", S.FACADE, (S.SYSTEM,) + MANAGER_SLOTS),
            ("authorize", S.FACADE, (S.SYSTEM, S.FACADE)),
        ]
        steps = []
        for index, (kind, slot, depends_on) in enumerate(specs):
            if kind == "authorize":
                name = f"authorize:{slot.value}"
                run = partial(self._authorize, name, slot)
                slot = None
            elif kind == "configure":
                name = "configure:TokenImplementation"
                run = partial(self._configure_token_implementation, name)
                slot = None
            else:
                name = slot.value
                run = partial(self._deploy, kind, slot)
            steps.append(DeploymentStep(index=index, name=name, depends_on=depends_on, run=run, slot=slot))
        return steps

    def _init_args(self, slot: ContractSlot, record: DeploymentRecord) -> tuple:
        contracts = record.contracts
        if slot is ContractSlot.SYSTEM:
            return (self.recovery_admin,)
        if slot is ContractSlot.FACADE:
            return (contracts[ContractSlot.SYSTEM.value],) + tuple(contracts[s.value] for s in MANAGER_SLOTS)
        return (contracts[ContractSlot.SYSTEM.value],)

    def _deploy(self, kind: str, slot: ContractSlot, record: DeploymentRecord) -> StepOutcome:
        if kind == "library":
            result = self.deployer.deploy_library(slot.value, self._options())
        elif kind == "contract":
            result = self.deployer.deploy_contract(slot.value, (), self._options())
        else:
            libraries = None
            if slot is ContractSlot.SYSTEM:
                libraries = {s.value: record.contracts[s.value] for s in LIBRARY_SLOTS}
            result = self.deployer.deploy_upgradeable(
                slot.value, self._init_args(slot, record), self._options(libraries=libraries)
            )
        if result.success and not result.already_deployed:
            self._invalidate_dependents(slot)
        return _from_deploy_result(result)

    def _dependents(self, slot: ContractSlot) -> Tuple[List[ContractSlot], List[str]]:
        """Deployment slots and write steps that depend on `slot`, transitively."""
        stale = {slot}
        slots: List[ContractSlot] = []
        actions: List[str] = []
        for step in self._steps:
            if not stale.intersection(step.depends_on):
                continue
            if step.slot is None:
                actions.append(step.name)
            elif step.slot not in stale:
                stale.add(step.slot)
                slots.append(step.slot)
        return slots, actions

    def _invalidate_dependents(self, slot: ContractSlot) -> None:
        """
        A fresh deployment voids everything recorded against the old address.

        Contracts initialized with it are dropped from the record so they are
        redeployed, as are the write steps that reference any of them.
        """
        slots, actions = self._dependents(slot)
        dropped = self.ctx.store.discard_contracts(self.network, [s.value for s in slots])
        removed = self.ctx.store.discard_actions(self.network, actions)
        if dropped or removed:
            logger.warning(
                "%s was redeployed, rerunning dependents: %s", slot.value, ", ".join(dropped + removed)
            )

    def _write_step(
        self,
        name: str,
        target: ContractSlot,
        method: str,
        args: tuple,
        record: DeploymentRecord,
    ) -> StepOutcome:
        if not self.force and name in record.actions:
            return StepOutcome(success=True, already_deployed=True, transaction_hash=record.actions[name])

        artifact = self.ctx.artifacts.get(target.value)
        outcome = self.deployer.invoke(
            name, record.contracts[target.value], artifact.abi, method, args, self._options()
        )
        if not outcome.confirmed:
            return StepOutcome(
                success=False,
                transaction_hash=outcome.hash,
                error=outcome.error or f"transaction {outcome.status.value}",
                transient=outcome.transient,
            )
        self.ctx.store.merge(self.network, actions={name: outcome.hash})
        return StepOutcome(success=True, transaction_hash=outcome.hash)

    def _authorize(self, name: str, slot: ContractSlot, record: DeploymentRecord) -> StepOutcome:
        return self._write_step(
            name, ContractSlot.SYSTEM, "authorizeContract", (record.contracts[slot.value], True), record
        )

    def _configure_token_implementation(self, name: str, record: DeploymentRecord) -> StepOutcome:
        token = record.contracts[ContractSlot.TOKEN_IMPLEMENTATION.value]
        return self._write_step(name, ContractSlot.PROPERTY_MANAGER, "setTokenImplementation", (token,), record)

    def _check_dependencies(self, step: DeploymentStep, record: DeploymentRecord) -> None:
        missing = [slot.value for slot in step.depends_on if slot.value not in record.contracts]
        if missing:
            raise MissingDependencyError(
                f"Step {step.index} ({step.name}) requires {', '.join(missing)}, "
                f"which {'is' if len(missing) == 1 else 'are'} not recorded for {self.network}"
            )

    def _attempt(self, step: DeploymentStep) -> StepOutcome:
        record = self.ctx.store.load(self.network)
        self._check_dependencies(step, record)
        outcome = step.run(record)
        if not outcome.success and outcome.transient:
            raise TransientTransactionError(outcome.error or "transient failure", outcome.transaction_hash)
        return outcome

    def _run_step(self, step: DeploymentStep) -> StepOutcome:
        def on_retry(attempt: int, error: BaseException) -> None:
            logger.warning("Step %d (%s) attempt %d failed: %s", step.index, step.name, attempt, error)

        try:
            return retry_call(
                partial(self._attempt, step),
                self.step_policy,
                lambda e: isinstance(e, TransientTransactionError),
                sleep=self._sleep,
                on_retry=on_retry,
            )
        except RetryExhaustedError as e:
            return StepOutcome(success=False, error=str(e.last_error), transient=True)

    def _emit(self, index: int, name: str, address: Optional[str], already_deployed: bool) -> None:
        if self.on_progress is not None:
            self.on_progress(make_event(index, name, address, already_deployed))

    def _bootstrap_roles(self, role_config: RoleConfig) -> StepOutcome:
        record = self.ctx.store.load(self.network)
        system = record.contracts.get(ContractSlot.SYSTEM.value)
        if not system:
            raise MissingDependencyError(f"{ContractSlot.SYSTEM.value} is not recorded for {self.network}")
        validator = RoleValidator(
            self.ctx.executor, system, price_tier=self.price_tier, recovery_admin=self.recovery_admin
        )
        report = RoleBootstrap(validator).run(role_config)
        changed = report.recovered or report.repaired or report.granted or report.revoked
        return StepOutcome(success=True, address=system, already_deployed=not changed)

    def _result(self, success: bool, reports: List[StepReport], **kwargs) -> DeploymentResult:
        record = self.ctx.store.load(self.network)
        return DeploymentResult(
            success=success,
            state=self._state,
            network=self.network,
            contract_addresses=dict(record.contracts),
            implementation_addresses=dict(record.implementations),
            steps=reports,
            **kwargs,
        )

    def _fail(self, index: int, name: str, error: str, reports: List[StepReport]) -> DeploymentResult:
        self._state = OrchestratorState.FAILED
        logger.error("Deployment on %s failed at step %d (%s): %s", self.network, index, name, error)
        return self._result(False, reports, failed_step=index, failed_step_name=name, error=error)

    def run(self, role_config: Optional[RoleConfig] = None) -> DeploymentResult:
        """
        Run every step in order, skipping those already complete.

        Args:
            role_config: Grants and revokes to apply once all contracts are deployed

        Returns:
            DeploymentResult; COMPLETED on success, FAILED with the failing step otherwise
        """
        self._state = OrchestratorState.RUNNING
        reports: List[StepReport] = []
        logger.info("Deploying to %s (%d steps, force=%s)", self.network, len(self._steps), self.force)

        for step in self._steps:
            self._current_step = step.index
            logger.info("Step %d: %s", step.index, step.name)
            try:
                outcome = self._run_step(step)
            except DeploymentError as e:
                return self._fail(step.index, step.name, str(e), reports)

            if not outcome.success:
                return self._fail(step.index, step.name, outcome.error or "step failed", reports)

            address = outcome.address
            if address is None and step.slot is not None:
                address = self.ctx.store.load(self.network).contracts.get(step.slot.value)
            reports.append(
                StepReport(
                    index=step.index,
                    name=step.name,
                    address=address,
                    already_deployed=outcome.already_deployed,
                    transaction_hash=outcome.transaction_hash,
                )
            )
            self._emit(step.index, step.name, address, outcome.already_deployed)

        if role_config is not None:
            index = len(self._steps)
            self._current_step = index
            logger.info("Step %d: %s", index, ROLE_PHASE_NAME)
            try:
                outcome = self._bootstrap_roles(role_config)
            except DeploymentError as e:
                return self._fail(index, ROLE_PHASE_NAME, str(e), reports)
            reports.append(
                StepReport(
                    index=index,
                    name=ROLE_PHASE_NAME,
                    address=outcome.address,
                    already_deployed=outcome.already_deployed,
                )
            )
            self._emit(index, ROLE_PHASE_NAME, outcome.address, outcome.already_deployed)

        self._state = OrchestratorState.COMPLETED
        self._current_step = None
        logger.info("Deployment on %s completed", self.network)
        return self._result(True, reports)
