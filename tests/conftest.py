"""Shared pytest fixtures for estate-deployments tests."""

import json
from pathlib import Path
from typing import List

import pytest

from estate_deployments.artifacts import InMemoryArtifactStore
from estate_deployments.config import ExecutorSettings
from estate_deployments.deployer import DeploymentContext
from estate_deployments.executor import TransactionExecutor
from estate_deployments.orchestrator import SystemDeployer
from estate_deployments.state import DeploymentStateStore

from fakes import LIB_SOURCES, RECOVERY, FakeInspector, FakeLedger, build_artifacts


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def executor_settings() -> ExecutorSettings:
    """Settings with no retry delay."""
    return ExecutorSettings(retry_delay_s=0.0)


@pytest.fixture
def sleeps() -> List[float]:
    """Records every delay the code under test asks to sleep for."""
    return []


@pytest.fixture
def executor(
    fake_ledger: FakeLedger, executor_settings: ExecutorSettings, sleeps: List[float]
) -> TransactionExecutor:
    return TransactionExecutor(fake_ledger, executor_settings, sleep=sleeps.append)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Create a temporary state directory for tests."""
    state_dir = tmp_path / ".estate-deployments"
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir


@pytest.fixture
def state_store(state_dir: Path) -> DeploymentStateStore:
    return DeploymentStateStore.at(state_dir)


@pytest.fixture
def artifacts() -> InMemoryArtifactStore:
    return InMemoryArtifactStore(build_artifacts())


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """Write the artifacts to disk in Hardhat's layout."""
    root = tmp_path / "artifacts"
    for name, data in build_artifacts().items():
        source = LIB_SOURCES.get(name, f"contracts/{name}.sol")
        path = root / source / f"{name}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump({"contractName": name, "sourceName": source, **data}, f, indent=2)
        # debug files sit next to every artifact
        (path.parent / f"{name}.dbg.json").write_text('{"buildInfo": "../build-info/x.json"}')
    return root


@pytest.fixture
def context(fake_ledger, executor, state_store, artifacts) -> DeploymentContext:
    return DeploymentContext(network="local", executor=executor, store=state_store, artifacts=artifacts)


@pytest.fixture
def inspected_context(fake_ledger, executor, state_store, artifacts) -> DeploymentContext:
    return DeploymentContext(
        network="local",
        executor=executor,
        store=state_store,
        artifacts=artifacts,
        inspector=FakeInspector(fake_ledger),
    )


@pytest.fixture
def system_deployer(context: DeploymentContext, sleeps: List[float]) -> SystemDeployer:
    return SystemDeployer(context, recovery_admin=RECOVERY, sleep=sleeps.append)
