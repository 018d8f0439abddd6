"""Durable deployment state: per-network records, snapshots and retention."""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_KEEP_SNAPSHOTS
from .exceptions import StateInconsistencyError, StateWriteError
from .paths import latest_record_path, snapshot_path
from .types import DeploymentRecord

logger = logging.getLogger(__name__)

SNAPSHOT_STAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _atomic_write_json(path: Path, data: Dict[str, Any]) -> None:
    """Write JSON to a temp file next to `path`, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class FileStateBackend:
    """
    JSON file backend.

    Layout inside `state_dir`:
    - {network}-latest.json: the current record
    - {network}-{stamp}.json: timestamped historical snapshots
    """

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    def get(self, network: str) -> Optional[Dict[str, Any]]:
        """
        Read the latest record.

        Returns:
            Parsed JSON, or None if no record exists

        Raises:
            json.JSONDecodeError: If the file is corrupted
            OSError: If the file exists but cannot be read
        """
        path = latest_record_path(self.state_dir, network)
        try:
            with open(path) as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def put(self, network: str, data: Dict[str, Any]) -> Path:
        path = latest_record_path(self.state_dir, network)
        _atomic_write_json(path, data)
        return path

    def snapshot(self, network: str, data: Dict[str, Any], when: Optional[datetime] = None) -> Path:
        stamp = (when or _utc_now()).strftime(SNAPSHOT_STAMP_FORMAT)
        path = snapshot_path(self.state_dir, network, stamp)
        _atomic_write_json(path, data)
        return path

    def list_snapshots(self, network: str) -> List[Path]:
        """Return snapshot files for a network, oldest first."""
        if not self.state_dir.exists():
            return []
        snapshots = []
        prefix = f"{network}-"
        for path in self.state_dir.glob(f"{network}-*.json"):
            stamp = path.stem[len(prefix):]
            try:
                datetime.strptime(stamp, SNAPSHOT_STAMP_FORMAT)
            except ValueError:
                # latest pointer, or another network sharing the prefix
                continue
            snapshots.append(path)
        return sorted(snapshots, key=lambda p: p.stem)

    def prune(self, network: str, keep: int) -> List[Path]:
        """Delete all but the newest `keep` snapshots. Returns deleted paths."""
        snapshots = self.list_snapshots(network)
        doomed = snapshots[: max(0, len(snapshots) - keep)]
        for path in doomed:
            path.unlink()
        return doomed


class DeploymentStateStore:
    """
    Network-keyed deployment records with atomic read-modify-write.

    Concurrent orchestrator runs against the same backend are not supported;
    callers must serialize them.
    """

    def __init__(
        self,
        backend: FileStateBackend,
        snapshot: bool = True,
        keep_snapshots: int = DEFAULT_KEEP_SNAPSHOTS,
    ):
        self.backend = backend
        self.snapshot = snapshot
        self.keep_snapshots = keep_snapshots

    @classmethod
    def at(cls, state_dir: Path, **kwargs: Any) -> "DeploymentStateStore":
        return cls(FileStateBackend(state_dir), **kwargs)

    def load(self, network: str) -> DeploymentRecord:
        """
        Load the current record for a network.

        Missing or unreadable storage yields an empty record (a fresh
        deployment is assumed) and a warning. Implementation entries whose
        proxy entry was removed are dropped with a warning.
        """
        try:
            data = self.backend.get(network)
        except (OSError, ValueError) as e:
            logger.warning("Could not read deployment record for %s, starting empty: %s", network, e)
            return DeploymentRecord.empty(network)

        if data is None:
            return DeploymentRecord.empty(network)
        if not isinstance(data, dict):
            logger.warning("Deployment record for %s is not an object, starting empty", network)
            return DeploymentRecord.empty(network)
        record = DeploymentRecord.from_dict(network, data)

        orphans = sorted(set(record.implementations) - set(record.contracts))
        for key in orphans:
            del record.implementations[key]
        if orphans:
            logger.warning(
                "Dropping implementations without proxy entries in %s: %s", network, ", ".join(orphans)
            )
        return record

    def save(self, network: str, record: DeploymentRecord) -> None:
        """
        Persist a record as the network's latest.

        Raises:
            StateWriteError: If the latest record could not be written
        """
        record.network = network
        record.updated_at = _utc_now().isoformat()
        data = record.to_dict()
        try:
            self.backend.put(network, data)
        except OSError as e:
            raise StateWriteError(f"Failed to write deployment record for {network}: {e}") from e

        if self.snapshot:
            try:
                self.backend.snapshot(network, data)
            except OSError as e:
                logger.warning("Failed to write snapshot for %s: %s", network, e)
            self.prune_snapshots(network)

    def merge(
        self,
        network: str,
        contracts: Optional[Dict[str, str]] = None,
        implementations: Optional[Dict[str, str]] = None,
        actions: Optional[Dict[str, str]] = None,
    ) -> DeploymentRecord:
        """
        Shallow-merge entries into the stored record and write it back.

        Returns:
            The merged record

        Raises:
            StateInconsistencyError: If a merged implementation has no matching contract entry
            StateWriteError: If the merged record could not be written
        """
        record = self.load(network)
        record.contracts.update(contracts or {})
        record.implementations.update(implementations or {})
        record.actions.update(actions or {})

        orphans = sorted(set(implementations or {}) - set(record.contracts))
        if orphans:
            raise StateInconsistencyError(
                f"Implementations without proxy entries in {network}: {', '.join(orphans)}"
            )

        self.save(network, record)
        return record

    def discard_actions(self, network: str, keys: List[str]) -> List[str]:
        """
        Forget completed write steps so they run again.

        Returns:
            The keys that were present and removed
        """
        record = self.load(network)
        removed = [key for key in keys if record.actions.pop(key, None) is not None]
        if removed:
            self.save(network, record)
        return removed

    def discard_contracts(self, network: str, keys: List[str]) -> List[str]:
        """
        Forget deployed contracts, with their implementations, so they are redeployed.

        Returns:
            The keys that were present and removed
        """
        record = self.load(network)
        removed = [key for key in keys if record.contracts.pop(key, None) is not None]
        for key in keys:
            record.implementations.pop(key, None)
        if removed:
            self.save(network, record)
        return removed

    def prune_snapshots(self, network: str, keep: Optional[int] = None) -> List[Path]:
        """
        Best-effort housekeeping: keep the newest N snapshots plus latest.

        Never raises; failures are logged.
        """
        keep = self.keep_snapshots if keep is None else keep
        try:
            deleted = self.backend.prune(network, keep)
        except OSError as e:
            logger.warning("Snapshot pruning failed for %s: %s", network, e)
            return []
        if deleted:
            logger.debug("Pruned %d snapshots for %s", len(deleted), network)
        return deleted
