"""Compiled contract artifact loading for estate-deployments library."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ArtifactNotFoundError, ConfigurationError
from .types import ContractArtifact


def parse_artifact(file_path: Path) -> ContractArtifact:
    """
    Parse a Hardhat-style artifact JSON file.

    Args:
        file_path: Path to {ContractName}.json

    Returns:
        ContractArtifact with abi, bytecode and link references

    Raises:
        ConfigurationError: If the file is unreadable, not JSON, or lacks abi or bytecode
    """
    try:
        with open(file_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Artifact {file_path} is not valid JSON: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read artifact {file_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Artifact {file_path} is not a JSON object")

    abi = data.get("abi")
    # Foundry nests bytecode as {"object": "0x..."}
    bytecode = data.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if abi is None or not bytecode:
        raise ConfigurationError(f"Artifact missing abi/bytecode: {file_path}")

    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode

    return ContractArtifact(
        name=data.get("contractName", file_path.stem),
        abi=abi,
        bytecode=bytecode,
        link_references=data.get("linkReferences") or {},
        source_name=data.get("sourceName"),
    )


class ArtifactStore:
    """Looks up compiled artifacts by contract name under a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._cache: Dict[str, ContractArtifact] = {}

    def _find(self, name: str) -> Optional[Path]:
        # Hardhat: artifacts/contracts/Foo.sol/Foo.json; flat layouts also work
        candidates = [
            p
            for p in self.root.rglob(f"{name}.json")
            if not p.name.endswith(".dbg.json") and "build-info" not in p.parts
        ]
        if not candidates:
            return None
        return sorted(candidates, key=lambda p: len(p.parts))[0]

    def get(self, name: str) -> ContractArtifact:
        """
        Get the artifact of a contract.

        Raises:
            ArtifactNotFoundError: If no artifact exists for the name
            ConfigurationError: If the artifact file is corrupt
        """
        if name in self._cache:
            return self._cache[name]

        path = self._find(name)
        if path is None:
            raise ArtifactNotFoundError(
                f"No artifact for '{name}' under {self.root}. Compile the contracts first."
            )

        artifact = parse_artifact(path)
        self._cache[name] = artifact
        return artifact

    def has(self, name: str) -> bool:
        return name in self._cache or self._find(name) is not None


class InMemoryArtifactStore(ArtifactStore):
    """Artifact store backed by a dict, for embedding callers and tests."""

    def __init__(self, artifacts: Dict[str, Dict[str, Any]]):
        super().__init__(Path("."))
        for name, data in artifacts.items():
            bytecode = data["bytecode"]
            self._cache[name] = ContractArtifact(
                name=name,
                abi=data.get("abi", []),
                bytecode=bytecode if bytecode.startswith("0x") else "0x" + bytecode,
                link_references=data.get("linkReferences") or {},
                source_name=data.get("sourceName"),
            )

    def _find(self, name: str) -> Optional[Path]:
        return None
