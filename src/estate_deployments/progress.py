"""Newline-delimited JSON progress stream."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .types import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def make_event(
    step_index: int,
    contract_name: str,
    address: Optional[str],
    already_deployed: bool = False,
) -> ProgressEvent:
    return ProgressEvent(
        step_index=step_index,
        contract_name=contract_name,
        address=address,
        timestamp=datetime.now(timezone.utc).isoformat(),
        already_deployed=already_deployed,
    )


class NDJSONProgressWriter:
    """
    Appends one JSON object per progress event to a file.

    Write failures are logged and dropped; progress reporting never fails
    a deployment.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def __call__(self, event: ProgressEvent) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(event.to_dict()) + "\n")
        except OSError as e:
            logger.warning("Could not write progress event to %s: %s", self.path, e)


def read_events(path: Path) -> list:
    """Read back every event of a progress file as dicts, skipping blank lines."""
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]
