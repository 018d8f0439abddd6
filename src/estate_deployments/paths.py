"""Path management utilities for estate-deployments library."""

from pathlib import Path
from typing import Optional, Union


def get_default_state_dir() -> Path:
    """
    Get default deployment state directory.

    Returns:
        Path to ./.estate-deployments
    """
    return Path.cwd() / ".estate-deployments"


def get_default_artifacts_dir() -> Path:
    """
    Get default compiled artifacts directory (Hardhat layout).

    Returns:
        Path to ./artifacts
    """
    return Path.cwd() / "artifacts"


def resolve_dir(path: Optional[Union[Path, str]], default: Path) -> Path:
    """Return `path` as an absolute Path, or `default` when not given."""
    if path is None:
        return default
    return Path(path).absolute()


def latest_record_path(state_dir: Path, network: str) -> Path:
    """Path of the `{network}-latest.json` record."""
    return state_dir / f"{network}-latest.json"


def snapshot_path(state_dir: Path, network: str, stamp: str) -> Path:
    """Path of a timestamped `{network}-{stamp}.json` snapshot."""
    return state_dir / f"{network}-{stamp}.json"


def get_default_progress_path(state_dir: Path, network: str) -> Path:
    """
    Get default progress event stream path.

    Returns:
        Path to {state_dir}/{network}-progress.ndjson
    """
    return state_dir / f"{network}-progress.ndjson"
