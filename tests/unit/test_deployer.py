"""Unit tests for the contract deployer."""

import pytest

from estate_deployments.deployer import ContractDeployer, DeploymentContext, DeployOptions
from estate_deployments.exceptions import StateInconsistencyError, StateWriteError, TransientTransactionError
from estate_deployments.types import TransactionStatus

from fakes import FakeLedger

LIBRARIES = {
    "SystemDeployerLib1": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
    "SystemDeployerLib2": "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
}
DEAD = "0x000000000000000000000000000000000000dEaD"


@pytest.fixture
def deployer(context: DeploymentContext) -> ContractDeployer:
    return ContractDeployer(context)


@pytest.fixture
def inspected_deployer(inspected_context: DeploymentContext) -> ContractDeployer:
    return ContractDeployer(inspected_context)


class TestDeployLibrary:
    """Test library and plain contract deployment."""

    def test_deploys_and_records(self, deployer, fake_ledger: FakeLedger, state_store):
        result = deployer.deploy_library("SystemDeployerLib1")

        assert result.success
        assert not result.already_deployed
        assert result.address == fake_ledger.deployments_of("SystemDeployerLib1")[0]
        assert result.transaction_hash is not None
        assert state_store.load("local").contracts == {"SystemDeployerLib1": result.address}

    def test_second_call_is_already_deployed(self, deployer, fake_ledger):
        first = deployer.deploy_library("SystemDeployerLib1")
        sent = len(fake_ledger.sent)

        second = deployer.deploy_library("SystemDeployerLib1")

        assert second.success
        assert second.already_deployed
        assert second.address == first.address
        assert len(fake_ledger.sent) == sent

    def test_force_redeploys(self, deployer, fake_ledger, state_store):
        first = deployer.deploy_library("SystemDeployerLib1")

        second = deployer.deploy_library("SystemDeployerLib1", DeployOptions(force=True))

        assert not second.already_deployed
        assert second.address != first.address
        assert state_store.load("local").contracts["SystemDeployerLib1"] == second.address

    def test_constructor_arguments_are_passed(self, deployer, fake_ledger):
        deployer.deploy_contract("PropertyToken", (DEAD, 42))

        assert fake_ledger.sent[-1].args == (DEAD, 42)

    def test_record_as_overrides_key(self, deployer, state_store):
        result = deployer.deploy_contract("PropertyToken", options=DeployOptions(record_as="TokenTemplate"))

        assert result.contract_name == "TokenTemplate"
        assert "TokenTemplate" in state_store.load("local").contracts
        assert "PropertyToken" not in state_store.load("local").contracts

    def test_missing_artifact_is_a_failed_result(self, deployer, fake_ledger):
        result = deployer.deploy_contract("NoSuchContract")

        assert not result.success
        assert result.error.contract_name == "NoSuchContract"
        assert "NoSuchContract" in result.error.message
        assert fake_ledger.sent == []

    def test_reverted_deployment_is_a_failed_result(self, deployer, fake_ledger, state_store):
        fake_ledger.revert_next("deploy:PropertyToken")

        result = deployer.deploy_contract("PropertyToken")

        assert not result.success
        assert result.error.transaction_hash is not None
        assert "injected revert" in result.error.message
        assert state_store.load("local").is_empty()

    def test_exhausted_transient_failure_is_flagged(self, deployer, fake_ledger):
        fake_ledger.fail_next("deploy:PropertyToken", TransientTransactionError("timeout"), times=3)

        result = deployer.deploy_contract("PropertyToken")

        assert not result.success
        assert result.error.transient


class TestDeployUpgradeable:
    """Test proxy pair deployment."""

    def test_deploys_implementation_proxy_and_initializes(self, deployer, fake_ledger, state_store):
        result = deployer.deploy_upgradeable("PropertyManager", (DEAD,))

        assert result.success
        proxy, implementation = result.address, result.implementation_address
        assert fake_ledger.proxies[proxy] == implementation
        assert fake_ledger.names[implementation] == "PropertyManager"
        assert fake_ledger.initialized[proxy] == (DEAD,)
        assert fake_ledger.labels() == [
            "deploy:PropertyManager",
            "deploy:ERC1967Proxy",
            "invoke:PropertyManager.initialize",
        ]

        record = state_store.load("local")
        assert record.contracts == {"PropertyManager": proxy}
        assert record.implementations == {"PropertyManager": implementation}

    def test_proxy_is_created_with_empty_init_data(self, deployer, fake_ledger):
        result = deployer.deploy_upgradeable("TradingManager", (DEAD,))

        proxy_action = fake_ledger.sent[1]
        assert proxy_action.args == (result.implementation_address, b"")

    def test_links_libraries(self, deployer, fake_ledger):
        result = deployer.deploy_upgradeable(
            "RealEstateSystem", (DEAD,), DeployOptions(libraries=LIBRARIES)
        )

        assert result.success
        bytecode = fake_ledger.sent[0].bytecode
        assert LIBRARIES["SystemDeployerLib1"][2:].lower() in bytecode
        assert LIBRARIES["SystemDeployerLib2"][2:].lower() in bytecode

    def test_missing_library_fails_before_sending(self, deployer, fake_ledger, state_store):
        result = deployer.deploy_upgradeable(
            "RealEstateSystem",
            (DEAD,),
            DeployOptions(libraries={"SystemDeployerLib1": LIBRARIES["SystemDeployerLib1"]}),
        )

        assert not result.success
        assert "SystemDeployerLib2" in result.error.message
        assert fake_ledger.sent == []
        assert state_store.load("local").is_empty()

    def test_failed_initializer_records_nothing(self, deployer, fake_ledger, state_store):
        fake_ledger.revert_next("invoke:RewardManager.initialize")

        result = deployer.deploy_upgradeable("RewardManager", (DEAD,))

        assert not result.success
        assert result.error.message.startswith("initialize:")
        assert state_store.load("local").is_empty()

    def test_already_deployed_pair(self, deployer, fake_ledger):
        first = deployer.deploy_upgradeable("PropertyManager", (DEAD,))
        sent = len(fake_ledger.sent)

        second = deployer.deploy_upgradeable("PropertyManager", (DEAD,))

        assert second.already_deployed
        assert second.address == first.address
        assert second.implementation_address == first.implementation_address
        assert len(fake_ledger.sent) == sent


class TestRecordVerification:
    """Test stale address detection and implementation discovery."""

    def test_stale_address_is_redeployed(self, inspected_deployer, fake_ledger, state_store, caplog):
        state_store.merge("local", contracts={"SystemDeployerLib1": DEAD})

        with caplog.at_level("WARNING", logger="estate_deployments.deployer"):
            result = inspected_deployer.deploy_library("SystemDeployerLib1")

        assert not result.already_deployed
        assert result.address != DEAD
        assert state_store.load("local").contracts["SystemDeployerLib1"] == result.address
        assert "has no code" in caplog.text

    def test_live_address_is_kept(self, inspected_deployer, fake_ledger):
        first = inspected_deployer.deploy_library("SystemDeployerLib1")

        assert inspected_deployer.deploy_library("SystemDeployerLib1").already_deployed
        assert len(fake_ledger.deployments_of("SystemDeployerLib1")) == 1
        assert first.success

    def test_missing_implementation_is_discovered(self, inspected_deployer, fake_ledger, state_store):
        first = inspected_deployer.deploy_upgradeable("PropertyManager", (DEAD,))
        record = state_store.load("local")
        record.implementations.clear()
        state_store.save("local", record)

        second = inspected_deployer.deploy_upgradeable("PropertyManager", (DEAD,))

        assert second.already_deployed
        assert second.implementation_address == first.implementation_address
        assert state_store.load("local").implementations == {"PropertyManager": first.implementation_address}

    def test_without_inspector_record_is_trusted(self, deployer, fake_ledger, state_store):
        state_store.merge("local", contracts={"SystemDeployerLib1": DEAD})

        result = deployer.deploy_library("SystemDeployerLib1")

        assert result.already_deployed
        assert result.address == DEAD
        assert fake_ledger.sent == []


class TestStateWriteFailure:
    def test_unrecorded_deployment_raises(self, deployer, fake_ledger, state_store, monkeypatch, caplog):
        def broken_put(network, data):
            raise OSError("disk full")

        monkeypatch.setattr(state_store.backend, "put", broken_put)

        with caplog.at_level("ERROR", logger="estate_deployments.deployer"):
            with pytest.raises(StateWriteError):
                deployer.deploy_library("SystemDeployerLib1")

        assert len(fake_ledger.sent) == 1
        assert "deployed but not recorded" in caplog.text

    def test_rejected_merge_is_unrecorded(self, deployer, fake_ledger, state_store, monkeypatch, caplog):
        def rejecting_merge(network, **entries):
            raise StateInconsistencyError("Implementations without proxy entries in local: RealEstateSystem")

        monkeypatch.setattr(state_store, "merge", rejecting_merge)

        with caplog.at_level("ERROR", logger="estate_deployments.deployer"):
            with pytest.raises(StateInconsistencyError):
                deployer.deploy_library("SystemDeployerLib1")

        assert len(fake_ledger.sent) == 1
        assert "SystemDeployerLib1 deployed but not recorded" in caplog.text


class TestInvoke:
    def test_invoke_sends_call(self, deployer, fake_ledger):
        pm = deployer.deploy_upgradeable("PropertyManager", (DEAD,)).address

        outcome = deployer.invoke("configure:TokenImplementation", pm, [], "setTokenImplementation", (DEAD,))

        assert outcome.status is TransactionStatus.CONFIRMED
        assert fake_ledger.token_implementations[pm] == DEAD
        assert fake_ledger.labels()[-1] == "invoke:configure:TokenImplementation.setTokenImplementation"
