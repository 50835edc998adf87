"""
Per-directory lock file recording how an instance was started.

The lock file is advisory bookkeeping, not a mutex: its presence marks an
active instance in the directory and lets `down`, `status` and `show-url`
reproduce the namespace and port offset used by `up`.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".cortex.lock"


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


@dataclass(frozen=True)
class LockFileData:
    """Isolation parameters of a running instance."""

    namespace: Optional[str]
    port_offset: Optional[int]
    started_at: str = field(default_factory=_now_iso)
    no_host_mapping: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "port_offset": self.port_offset,
            "started_at": self.started_at,
            "no_host_mapping": self.no_host_mapping,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockFileData":
        port_offset = data.get("port_offset")
        return cls(
            namespace=data.get("namespace"),
            port_offset=int(port_offset) if port_offset is not None else None,
            started_at=data.get("started_at") or _now_iso(),
            no_host_mapping=bool(data.get("no_host_mapping", False)),
        )


class LockFile:
    """Reads and writes the .cortex.lock file of a working directory."""

    def __init__(self, working_dir: Path):
        self.working_dir = working_dir
        self.lock_path = working_dir / LOCK_FILENAME

    def exists(self) -> bool:
        return self.lock_path.exists()

    def read(self) -> Optional[LockFileData]:
        """Read the lock data; None if missing or unreadable."""
        if not self.exists():
            return None

        try:
            with open(self.lock_path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable lock file {self.lock_path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed lock file {self.lock_path}")
            return None
        return LockFileData.from_dict(data)

    def write(self, data: LockFileData) -> None:
        with open(self.lock_path, "w") as f:
            json.dump(data.to_dict(), f, indent=2)
            f.write("\n")
        logger.debug(f"Wrote lock file {self.lock_path}")

    def delete(self) -> None:
        """Delete the lock file; no error if it is already gone."""
        try:
            self.lock_path.unlink()
            logger.debug(f"Deleted lock file {self.lock_path}")
        except FileNotFoundError:
            pass
