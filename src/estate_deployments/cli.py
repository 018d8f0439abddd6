"""Command-line entry point: estate-deploy."""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .artifacts import ArtifactStore
from .config import ExecutorSettings, resolve_rpc_url
from .constants import DEPLOYER_KEY_ENV, NETWORK_CONFIG, PriceTier
from .deployer import DeploymentContext
from .exceptions import ConfigurationError, DeploymentError
from .executor import TransactionExecutor
from .introspection import ChainInspector
from .ledger import Web3Ledger
from .orchestrator import SystemDeployer
from .paths import get_default_artifacts_dir, get_default_progress_path, get_default_state_dir, resolve_dir
from .progress import NDJSONProgressWriter
from .roles import load_role_config
from .state import DeploymentStateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="estate-deploy",
        description="Deploy the real-estate system contracts and bootstrap roles",
    )
    parser.add_argument(
        "--network",
        required=True,
        help=f"network name (known: {', '.join(sorted(NETWORK_CONFIG))})",
    )
    parser.add_argument("--force", action="store_true", help="redeploy even if already recorded")
    parser.add_argument("--role-config", help="JSON file of role grants and revokes")
    parser.add_argument("--state-dir", help="deployment record directory (default: ./.estate-deployments)")
    parser.add_argument("--artifacts-dir", help="compiled artifacts directory (default: ./artifacts)")
    parser.add_argument("--rpc-url", help="RPC URL (default: the network's RPC environment variable)")
    parser.add_argument("--recovery-admin", help="recovery principal of the system (default: deployer)")
    parser.add_argument(
        "--price-tier",
        choices=[t.name.lower() for t in PriceTier],
        help="gas price tier (default: medium, or $ESTATE_PRICE_TIER)",
    )
    parser.add_argument(
        "--progress-file",
        help="NDJSON progress file (default: <state-dir>/<network>-progress.ndjson)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="log level (default: INFO)",
    )
    return parser


def build_deployer(args: argparse.Namespace) -> SystemDeployer:
    """
    Wire every collaborator from parsed arguments and the environment.

    Raises:
        ConfigurationError: If the RPC URL, key or settings are unusable
    """
    rpc_url = resolve_rpc_url(args.network, args.rpc_url)
    private_key = os.environ.get(DEPLOYER_KEY_ENV, "").strip()
    if not private_key:
        raise ConfigurationError(f"Set ${DEPLOYER_KEY_ENV} to the deployer private key")

    settings = ExecutorSettings.from_env()
    state_dir = resolve_dir(args.state_dir, get_default_state_dir())
    artifacts_dir = resolve_dir(args.artifacts_dir, get_default_artifacts_dir())
    if not artifacts_dir.is_dir():
        raise ConfigurationError(f"Artifacts directory not found: {artifacts_dir}")
    progress_path = resolve_dir(args.progress_file, get_default_progress_path(state_dir, args.network))

    chain_id = NETWORK_CONFIG.get(args.network, {}).get("chain_id")
    try:
        ledger = Web3Ledger.from_rpc_url(rpc_url, private_key, chain_id=chain_id)
    except ValueError as e:
        raise ConfigurationError(f"Invalid deployer private key: {e}") from e

    context = DeploymentContext(
        network=args.network,
        executor=TransactionExecutor(ledger, settings),
        store=DeploymentStateStore.at(state_dir),
        artifacts=ArtifactStore(artifacts_dir),
        inspector=ChainInspector(rpc_url),
    )
    return SystemDeployer(
        context,
        recovery_admin=args.recovery_admin,
        force=args.force,
        price_tier=PriceTier.parse(args.price_tier) if args.price_tier else None,
        on_progress=NDJSONProgressWriter(progress_path),
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        role_config = load_role_config(args.role_config) if args.role_config else None
        deployer = build_deployer(args)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_CONFIG

    try:
        result = deployer.run(role_config)
    except DeploymentError as e:
        logger.error("Deployment aborted: %s", e)
        return EXIT_FAILED

    print(json.dumps(result.to_dict(), indent=2))
    return EXIT_OK if result.success else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
