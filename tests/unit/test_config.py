"""Unit tests for configuration, constants and path helpers."""

from pathlib import Path

import pytest

from estate_deployments.config import GWEI, ExecutorSettings, resolve_rpc_url
from estate_deployments.constants import DOMAIN_ROLES, ROOT_ROLE, SENTINEL_ROLE, PriceTier, Role
from estate_deployments.exceptions import ConfigurationError
from estate_deployments.paths import (
    get_default_artifacts_dir,
    get_default_progress_path,
    get_default_state_dir,
    latest_record_path,
    resolve_dir,
)


class TestExecutorSettings:
    """Test ExecutorSettings defaults and environment parsing."""

    def test_defaults(self):
        settings = ExecutorSettings()

        assert settings.safety_margin == 0.2
        assert settings.max_attempts == 3
        assert settings.retry_delay_s == 5.0
        assert settings.confirmations == 1
        assert settings.price_tier is PriceTier.MEDIUM

    def test_from_empty_env_uses_defaults(self):
        assert ExecutorSettings.from_env({}) == ExecutorSettings()

    def test_from_env(self):
        settings = ExecutorSettings.from_env(
            {
                "ESTATE_SAFETY_MARGIN": "0.5",
                "ESTATE_MAX_ATTEMPTS": "5",
                "ESTATE_RETRY_DELAY_S": "1.5",
                "ESTATE_CONFIRMATIONS": "2",
                "ESTATE_SUBMISSION_TIMEOUT_S": "30",
                "ESTATE_DEFAULT_GAS_LIMIT": "6000000",
                "ESTATE_DEFAULT_GAS_PRICE_GWEI": "2.5",
                "ESTATE_PRICE_TIER": "urgent",
            }
        )

        assert settings.safety_margin == 0.5
        assert settings.max_attempts == 5
        assert settings.retry_delay_s == 1.5
        assert settings.confirmations == 2
        assert settings.submission_timeout_s == 30.0
        assert settings.default_gas_limit == 6_000_000
        assert settings.default_gas_price_wei == int(2.5 * GWEI)
        assert settings.price_tier is PriceTier.URGENT

    @pytest.mark.parametrize(
        "env",
        [
            {"ESTATE_MAX_ATTEMPTS": "three"},
            {"ESTATE_PRICE_TIER": "ludicrous"},
            {"ESTATE_MAX_ATTEMPTS": "0"},
            {"ESTATE_SAFETY_MARGIN": "-0.1"},
        ],
    )
    def test_invalid_env_raises_configuration_error(self, env):
        with pytest.raises(ConfigurationError):
            ExecutorSettings.from_env(env)


class TestResolveRpcUrl:
    """Test the resolve_rpc_url function."""

    def test_explicit_url_wins(self):
        env = {"SEP_RPC_URL": "http://env"}
        assert resolve_rpc_url("testnet", "http://explicit", environ=env) == "http://explicit"

    def test_network_env_variable(self):
        assert resolve_rpc_url("testnet", environ={"SEP_RPC_URL": "http://env"}) == "http://env"

    def test_local_default(self):
        assert resolve_rpc_url("local", environ={}) == "http://127.0.0.1:8545"

    def test_missing_url_for_remote_network(self):
        with pytest.raises(ConfigurationError, match="SEP_RPC_URL"):
            resolve_rpc_url("testnet", environ={})

    def test_unknown_network_without_url(self):
        with pytest.raises(ConfigurationError, match="Unknown network"):
            resolve_rpc_url("mainnet-fork", environ={})

    def test_unknown_network_with_url(self):
        assert resolve_rpc_url("mainnet-fork", "http://fork:8545", environ={}) == "http://fork:8545"


class TestConstants:
    def test_price_tier_parse(self):
        assert PriceTier.parse(" High ") is PriceTier.HIGH

    def test_price_tier_parse_unknown(self):
        with pytest.raises(ValueError, match="low, medium, high, urgent"):
            PriceTier.parse("free")

    def test_role_partition(self):
        assert SENTINEL_ROLE is Role.DEFAULT_ADMIN
        assert ROOT_ROLE is Role.SUPER_ADMIN
        assert len(DOMAIN_ROLES) == len(Role) - 2
        assert SENTINEL_ROLE not in DOMAIN_ROLES and ROOT_ROLE not in DOMAIN_ROLES


class TestPaths:
    """Test path helper functions."""

    def test_default_dirs_are_relative_to_cwd(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert get_default_state_dir() == tmp_path / ".estate-deployments"
        assert get_default_artifacts_dir() == tmp_path / "artifacts"

    def test_resolve_dir(self, tmp_path: Path):
        default = tmp_path / "default"

        assert resolve_dir(None, default) == default
        assert resolve_dir(str(tmp_path / "x"), default) == tmp_path / "x"

    def test_record_and_progress_paths(self, tmp_path: Path):
        assert latest_record_path(tmp_path, "local") == tmp_path / "local-latest.json"
        assert get_default_progress_path(tmp_path, "local") == tmp_path / "local-progress.ndjson"
