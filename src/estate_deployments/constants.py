"""Configuration constants for estate-deployments library."""

from enum import Enum


class ContractSlot(Enum):
    """
    Known contract slots of the system.

    Value strings are the artifact names and the keys used in the
    deployment record.
    """

    LIB1 = "SystemDeployerLib1"
    LIB2 = "SystemDeployerLib2"
    SYSTEM = "RealEstateSystem"
    PROPERTY_MANAGER = "PropertyManager"
    TRADING_MANAGER = "TradingManager"
    REWARD_MANAGER = "RewardManager"
    TOKEN_IMPLEMENTATION = "PropertyToken"
    FACADE = "RealEstateFacade"


MANAGER_SLOTS = (
    ContractSlot.PROPERTY_MANAGER,
    ContractSlot.TRADING_MANAGER,
    ContractSlot.REWARD_MANAGER,
)

LIBRARY_SLOTS = (ContractSlot.LIB1, ContractSlot.LIB2)

# Proxy artifact used for every upgradeable contract
ERC1967_PROXY = "ERC1967Proxy"

# bytes32(uint256(keccak256("eip1967.proxy.implementation")) - 1)
EIP1967_IMPLEMENTATION_SLOT = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Role(Enum):
    """Closed set of access-control roles held on the core system contract."""

    DEFAULT_ADMIN = "DEFAULT_ADMIN_ROLE"
    SUPER_ADMIN = "SUPER_ADMIN"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    TOKEN_MANAGER = "TOKEN_MANAGER"
    FEE_MANAGER = "FEE_MANAGER"
    RENT_MANAGER = "RENT_MANAGER"
    REDEMPTION_MANAGER = "REDEMPTION_MANAGER"
    MARKETPLACE_MANAGER = "MARKETPLACE_MANAGER"
    FEE_COLLECTOR = "FEE_COLLECTOR"


# Sentinel admin of the root role
SENTINEL_ROLE = Role.DEFAULT_ADMIN

# Single root role administering every domain role
ROOT_ROLE = Role.SUPER_ADMIN

DOMAIN_ROLES = tuple(r for r in Role if r not in (SENTINEL_ROLE, ROOT_ROLE))


class PriceTier(Enum):
    """Gas price tiers, value is the multiplier in percent over the base price."""

    LOW = 90
    MEDIUM = 110
    HIGH = 130
    URGENT = 150

    @classmethod
    def parse(cls, name: str) -> "PriceTier":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown price tier '{name}', expected one of "
                f"{', '.join(t.name.lower() for t in cls)}"
            ) from None


# Executor defaults
DEFAULT_SAFETY_MARGIN = 0.2
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_S = 5.0
DEFAULT_CONFIRMATIONS = 1
DEFAULT_SUBMISSION_TIMEOUT_S = 120.0
DEFAULT_GAS_LIMIT = 8_000_000
DEFAULT_GAS_PRICE_GWEI = 30
DEFAULT_PRICE_TIER = PriceTier.MEDIUM

# State store defaults
DEFAULT_KEEP_SNAPSHOTS = 5

# Network configuration
NETWORK_CONFIG = {
    "local": {
        "chain_id": 31337,
        "chain_name": "Hardhat",
        "default_rpc_env": "LOCAL_RPC_URL",
        "default_rpc_url": "http://127.0.0.1:8545",
    },
    "testnet": {
        "chain_id": 11155111,
        "chain_name": "Sepolia",
        "default_rpc_env": "SEP_RPC_URL",
        "default_rpc_url": None,
    },
    "bsc_testnet": {
        "chain_id": 97,
        "chain_name": "BNB Smart Chain Testnet",
        "default_rpc_env": "BSC_TESTNET_RPC_URL",
        "default_rpc_url": None,
    },
}

# Environment variable holding the deployer private key
DEPLOYER_KEY_ENV = "DEPLOYER_PRIVATE_KEY"
