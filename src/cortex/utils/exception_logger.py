"""Failure log files for the cortex CLI.

Each CLI run that ends in an error appends a JSON entry (exception type,
message, stack trace, command context) to
``<working_dir>/.cortex/error_<timestamp>_<pid>.log``.
"""

import json
import os
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

LOG_DIR_NAME = ".cortex"


class ExceptionLogger:
    """Centralized exception logging facility."""

    _instance: Optional["ExceptionLogger"] = None

    def __init__(self, log_dir: Path):
        self.log_dir = log_dir
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file_path = log_dir / f"error_{timestamp}_{os.getpid()}.log"

    @classmethod
    def initialize(cls, working_dir: Path) -> "ExceptionLogger":
        """Initialize the process-wide logger (idempotent).

        The log file itself is only created when the first exception is
        logged, so successful runs leave no trace behind.
        """
        if cls._instance is not None:
            return cls._instance

        cls._instance = cls(working_dir / LOG_DIR_NAME)
        return cls._instance

    @classmethod
    def get_instance(cls) -> Optional["ExceptionLogger"]:
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    def log_exception(
        self, exception: BaseException, context: Optional[Dict[str, Any]] = None
    ) -> Optional[Path]:
        """Append an exception with its context; returns the log file path."""
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "exception_type": type(exception).__name__,
            "exception_message": str(exception),
            "stack_trace": "".join(
                traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                )
            ),
            "context": context or {},
        }

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_file_path, "a") as f:
                f.write(json.dumps(log_entry, indent=2, default=str))
                f.write("\n---\n")
        except OSError:
            # Read-only checkout: the console message is all the user gets
            return None

        return self.log_file_path
