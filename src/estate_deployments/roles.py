"""Role hierarchy check-and-repair, idempotent grants and emergency recovery."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from eth_utils import is_address, keccak, to_bytes, to_checksum_address

from .constants import DOMAIN_ROLES, ROOT_ROLE, SENTINEL_ROLE, PriceTier, Role
from .exceptions import (
    ConfigurationError,
    InvalidAddressError,
    PermanentTransactionError,
    RoleHierarchyError,
    TransientTransactionError,
    UnauthorizedRecoveryError,
)
from .executor import SubmitOptions, TransactionExecutor
from .types import InvokeAction, RoleDescriptor, TransactionOutcome

logger = logging.getLogger(__name__)
emergency_logger = logging.getLogger(__name__ + ".emergency")


def _fn(
    name: str, inputs: List[Tuple[str, str]], outputs: Optional[List[str]] = None, view: bool = False
) -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in (outputs or [])],
        "stateMutability": "view" if view else "nonpayable",
    }


ACCESS_CONTROL_ABI = [
    _fn("hasRole", [("role", "bytes32"), ("account", "address")], ["bool"], view=True),
    _fn("getRoleAdmin", [("role", "bytes32")], ["bytes32"], view=True),
    _fn("grantRole", [("role", "bytes32"), ("account", "address")]),
    _fn("revokeRole", [("role", "bytes32"), ("account", "address")]),
    _fn("setRoleAdmin", [("role", "bytes32"), ("adminRole", "bytes32")]),
    _fn("emergencyRecoverAdmin", []),
]

ZERO_ROLE_ID = b"\x00" * 32

ROLE_IDS: Dict[Role, bytes] = {
    role: ZERO_ROLE_ID if role is SENTINEL_ROLE else bytes(keccak(text=role.value)) for role in Role
}

# child -> parent
ROLE_HIERARCHY: Dict[Role, Role] = {ROOT_ROLE: SENTINEL_ROLE, **{role: ROOT_ROLE for role in DOMAIN_ROLES}}


def role_id(role: Role) -> bytes:
    """32-byte id of a role: keccak256 of its name, zero bytes for the sentinel."""
    return ROLE_IDS[role]


def parse_role(name: str) -> Role:
    """
    Look up a Role by enum name or on-chain name, with or without "_ROLE".

    Raises:
        ConfigurationError: If the name matches no role
    """
    key = name.strip().upper()
    candidates = [key]
    if key.endswith("_ROLE"):
        candidates.append(key[: -len("_ROLE")])
    for candidate in candidates:
        if candidate in Role.__members__:
            return Role[candidate]
        for role in Role:
            if role.value == candidate:
                return role
    raise ConfigurationError(f"Unknown role '{name}', expected one of {', '.join(r.name for r in Role)}")


def _as_bytes32(value: Any) -> bytes:
    if isinstance(value, str):
        return to_bytes(hexstr=value).rjust(32, b"\x00")
    return bytes(value)


@dataclass
class RoleConfig:
    """Principals to grant and revoke per role."""

    grants: Dict[Role, List[str]] = field(default_factory=dict)
    revokes: Dict[Role, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleConfig":
        """
        Build from {"grants": {ROLE: [address, ...]}, "revokes": {...}}.

        Raises:
            ConfigurationError: On unknown roles or malformed addresses
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Role config must be a JSON object")
        unknown = set(data) - {"grants", "revokes"}
        if unknown:
            raise ConfigurationError(f"Unknown role config keys: {', '.join(sorted(unknown))}")
        return cls(
            grants=cls._parse_section(data.get("grants") or {}),
            revokes=cls._parse_section(data.get("revokes") or {}),
        )

    @staticmethod
    def _parse_section(section: Dict[str, Any]) -> Dict[Role, List[str]]:
        if not isinstance(section, dict):
            raise ConfigurationError("Role config sections must map role names to address lists")
        parsed: Dict[Role, List[str]] = {}
        for name, principals in section.items():
            role = parse_role(name)
            if isinstance(principals, str):
                principals = [principals]
            for principal in principals:
                if not isinstance(principal, str) or not is_address(principal):
                    raise ConfigurationError(f"Invalid address for role {role.name}: {principal!r}")
            parsed.setdefault(role, []).extend(principals)
        return parsed


def load_role_config(path: Union[Path, str]) -> RoleConfig:
    """
    Load a role config JSON file.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Role config not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Role config {path} is not valid JSON: {e}") from e
    return RoleConfig.from_dict(data)


class RoleValidator:
    """
    Keeps the on-chain role hierarchy of the registry contract as configured.

    Every grant and revoke first validates (and repairs) the hierarchy.

    Args:
        executor: Transaction executor submitting from the root principal
        registry_address: Address of the contract holding the roles
        price_tier: Gas price tier for role transactions
        recovery_admin: Recovery principal set when the registry was
            initialized. The registry exposes no getter for it; when unknown,
            emergency recovery is attempted and the contract decides.
    """

    def __init__(
        self,
        executor: TransactionExecutor,
        registry_address: str,
        price_tier: Optional[PriceTier] = None,
        recovery_admin: Optional[str] = None,
    ):
        self.executor = executor
        self.registry_address = registry_address
        self.price_tier = price_tier
        self.recovery_admin = to_checksum_address(recovery_admin) if recovery_admin else None
        self._members: Dict[Role, Set[str]] = {}

    @property
    def sender(self) -> str:
        return self.executor.sender

    def _call(self, method: str, *args: Any) -> Any:
        return self.executor.call(self.registry_address, ACCESS_CONTROL_ABI, method, args)

    def _send(self, method: str, *args: Any) -> TransactionOutcome:
        outcome = self.executor.submit(
            InvokeAction(
                address=self.registry_address,
                abi=ACCESS_CONTROL_ABI,
                method=method,
                args=tuple(args),
                name="roles",
            ),
            SubmitOptions(price_tier=self.price_tier),
        )
        if not outcome.confirmed:
            error_cls = TransientTransactionError if outcome.transient else PermanentTransactionError
            raise error_cls(f"{method} failed: {outcome.error or outcome.status.value}", outcome.hash)
        return outcome

    def has_role(self, role: Role, principal: str) -> bool:
        principal = to_checksum_address(principal)
        held = bool(self._call("hasRole", role_id(role), principal))
        members = self._members.setdefault(role, set())
        if held:
            members.add(principal)
        else:
            members.discard(principal)
        return held

    def admin_of(self, role: Role) -> bytes:
        """On-chain admin role id of `role`."""
        return _as_bytes32(self._call("getRoleAdmin", role_id(role)))

    def describe(self, role: Role) -> RoleDescriptor:
        return RoleDescriptor(
            role=role,
            role_id=role_id(role),
            admin_role_id=self.admin_of(role),
            members=set(self._members.get(role, set())),
        )

    def ensure_role(self, role: Role, parent: Role) -> bool:
        """
        Make `parent` the admin of `role` on chain.

        Returns:
            True if the edge had drifted and was repaired

        Raises:
            RoleHierarchyError: If the edge is not part of the configured hierarchy
        """
        if ROLE_HIERARCHY.get(role) is not parent:
            raise RoleHierarchyError(
                f"{role.name} -> {parent.name} is not a configured edge "
                f"(expected parent: {ROLE_HIERARCHY[role].name if role in ROLE_HIERARCHY else 'none'})"
            )
        if self.admin_of(role) == role_id(parent):
            return False
        logger.warning("Admin of %s drifted, resetting to %s", role.name, parent.name)
        self._send("setRoleAdmin", role_id(role), role_id(parent))
        return True

    def validate_hierarchy(self) -> List[Role]:
        """
        Check every configured edge and repair the ones that drifted.

        Returns:
            Roles whose admin was repaired
        """
        repaired = [role for role, parent in ROLE_HIERARCHY.items() if self.ensure_role(role, parent)]
        if repaired:
            logger.info("Repaired role admins: %s", ", ".join(r.name for r in repaired))
        return repaired

    def _check_principal(self, principal: str) -> str:
        if not isinstance(principal, str) or not is_address(principal):
            raise InvalidAddressError(f"Invalid principal address: {principal!r}")
        return to_checksum_address(principal)

    def grant(self, role: Role, principal: str) -> bool:
        """
        Grant `role` to `principal` unless already held.

        Returns:
            True if a transaction was sent
        """
        principal = self._check_principal(principal)
        self.validate_hierarchy()
        if self.has_role(role, principal):
            logger.debug("%s already holds %s", principal, role.name)
            return False
        self._send("grantRole", role_id(role), principal)
        self._members.setdefault(role, set()).add(principal)
        logger.info("Granted %s to %s", role.name, principal)
        return True

    def revoke(self, role: Role, principal: str) -> bool:
        """
        Revoke `role` from `principal` if held.

        Returns:
            True if a transaction was sent
        """
        principal = self._check_principal(principal)
        self.validate_hierarchy()
        if not self.has_role(role, principal):
            logger.debug("%s does not hold %s", principal, role.name)
            return False
        self._send("revokeRole", role_id(role), principal)
        self._members.get(role, set()).discard(principal)
        logger.info("Revoked %s from %s", role.name, principal)
        return True

    def may_recover(self) -> bool:
        """False only when the recovery principal is known and is not the sender."""
        return self.recovery_admin is None or self.recovery_admin == to_checksum_address(self.sender)

    def emergency_recover(self) -> TransactionOutcome:
        """
        Re-grant the root and sentinel roles to the sender via emergencyRecoverAdmin.

        Raises:
            UnauthorizedRecoveryError: If the sender is not the known recovery principal
            TransactionError: If the registry rejects the recovery
        """
        sender = to_checksum_address(self.sender)
        if not self.may_recover():
            emergency_logger.warning(
                "Refused emergency recovery on %s: sender %s is not recovery admin %s",
                self.registry_address,
                sender,
                self.recovery_admin,
            )
            raise UnauthorizedRecoveryError(f"{sender} is not the recovery admin of {self.registry_address}")

        emergency_logger.warning("Emergency recovery on %s by %s", self.registry_address, sender)
        outcome = self._send("emergencyRecoverAdmin")
        self._members.setdefault(ROOT_ROLE, set()).add(sender)
        self._members.setdefault(SENTINEL_ROLE, set()).add(sender)
        emergency_logger.warning("Emergency recovery confirmed in %s", outcome.hash)
        return outcome

    def regain_root(self) -> TransactionOutcome:
        """
        Grant the root role back to the sender through the sentinel role it still holds.

        Raises:
            TransactionError: If the grant reverts
        """
        sender = to_checksum_address(self.sender)
        self.ensure_role(ROOT_ROLE, SENTINEL_ROLE)
        emergency_logger.warning(
            "Sender %s lost %s on %s, re-granting through %s",
            sender,
            ROOT_ROLE.name,
            self.registry_address,
            SENTINEL_ROLE.name,
        )
        outcome = self._send("grantRole", role_id(ROOT_ROLE), sender)
        self._members.setdefault(ROOT_ROLE, set()).add(sender)
        return outcome


@dataclass
class BootstrapReport:
    """What the role bootstrap changed."""

    recovered: bool = False
    repaired: List[Role] = field(default_factory=list)
    granted: List[Tuple[Role, str]] = field(default_factory=list)
    revoked: List[Tuple[Role, str]] = field(default_factory=list)


class RoleBootstrap:
    """Applies a RoleConfig: recover if locked out, repair, grant, revoke."""

    def __init__(self, validator: RoleValidator):
        self.validator = validator

    def _recover_root(self) -> bool:
        """
        Make sure the sender holds the root role before any change.

        Returns:
            True if the root role had been lost and was recovered
        """
        validator = self.validator
        sender = validator.sender
        if validator.has_role(ROOT_ROLE, sender):
            return False
        if validator.has_role(SENTINEL_ROLE, sender):
            validator.regain_root()
            return True
        if validator.may_recover():
            validator.emergency_recover()
            return True
        logger.warning(
            "Sender %s holds neither %s nor %s and is not the recovery admin; "
            "role changes will likely revert",
            sender,
            ROOT_ROLE.name,
            SENTINEL_ROLE.name,
        )
        return False

    def run(self, config: RoleConfig) -> BootstrapReport:
        report = BootstrapReport()
        report.recovered = self._recover_root()

        report.repaired = self.validator.validate_hierarchy()

        for role, principals in config.grants.items():
            for principal in principals:
                if self.validator.grant(role, principal):
                    report.granted.append((role, principal))

        for role, principals in config.revokes.items():
            for principal in principals:
                if self.validator.revoke(role, principal):
                    report.revoked.append((role, principal))

        logger.info(
            "Role bootstrap done: recovered=%s repaired=%d granted=%d revoked=%d",
            report.recovered,
            len(report.repaired),
            len(report.granted),
            len(report.revoked),
        )
        return report
