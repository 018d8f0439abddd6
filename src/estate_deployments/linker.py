"""Library placeholder resolution for contract bytecode."""

from typing import Any, Dict, Mapping

from eth_utils import is_address, keccak

from .exceptions import InvalidAddressError, MissingLibraryAddressError

PLACEHOLDER_LENGTH = 40  # 20 bytes, hex encoded


def placeholder_for(fully_qualified_name: str) -> str:
    """
    Placeholder solc (>=0.5) emits for a library reference.

    Args:
        fully_qualified_name: "path/to/File.sol:LibraryName"

    Returns:
        "__$" + first 34 hex chars of keccak256(name) + "$__"
    """
    digest = bytes(keccak(text=fully_qualified_name)).hex()
    return f"__${digest[:34]}$__"


def legacy_placeholder_for(library_name: str) -> str:
    """Pre-0.5 placeholder: "__Name" padded with underscores to 40 chars."""
    return f"__{library_name[:36]}".ljust(PLACEHOLDER_LENGTH, "_")


def library_refs(link_references: Mapping[str, Mapping[str, Any]]) -> Dict[str, str]:
    """
    Map library name to placeholder from an artifact's linkReferences.

    Args:
        link_references: {source_path: {library_name: [{start, length}, ...]}}

    Returns:
        {library_name: placeholder}
    """
    refs: Dict[str, str] = {}
    for source_name, libraries in link_references.items():
        for library_name in libraries:
            refs[library_name] = placeholder_for(f"{source_name}:{library_name}")
    return refs


def _address_hex(library_name: str, address: str) -> str:
    if not isinstance(address, str) or not is_address(address):
        raise InvalidAddressError(f"Invalid address for library {library_name}: {address!r}")
    return address.lower().replace("0x", "", 1)


def link(bytecode: str, refs: Mapping[str, str], resolved: Mapping[str, str]) -> str:
    """
    Replace library placeholders with deployed library addresses.

    Pure function: the same inputs always give the same output.

    Args:
        bytecode: Unlinked bytecode (hex, with or without 0x)
        refs: {library_name: placeholder}
        resolved: {library_name: address}

    Returns:
        Linked bytecode

    Raises:
        MissingLibraryAddressError: If any referenced library has no address
        InvalidAddressError: If a resolved address is malformed
    """
    missing = [name for name in refs if not resolved.get(name)]
    if missing:
        raise MissingLibraryAddressError(missing)

    linked = bytecode
    for name, placeholder in refs.items():
        address_hex = _address_hex(name, resolved[name])
        linked = linked.replace(placeholder, address_hex)
        linked = linked.replace(legacy_placeholder_for(name), address_hex)
    return linked


def is_linked(bytecode: str) -> bool:
    """True if no solc library placeholders remain in the bytecode."""
    return "__$" not in bytecode
