# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# middleware/logging/uvicorn.py
import logging
from typing import Iterable


class UvicornAccessPathFilter(logging.Filter):
    """Hide access logs for selected paths/prefixes (liveness probes hit these constantly)."""
    def __init__(self, silenced_paths: Iterable[str] = (), silenced_prefixes: Iterable[str] = ()):
        super().__init__()
        self.silenced_paths = set(silenced_paths)
        self.silenced_prefixes = tuple(silenced_prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn passes (client_addr, method, full_path, http_version, status_code)
        path = None
        if isinstance(record.args, tuple) and len(record.args) >= 3:
            path = record.args[2]
        if not isinstance(path, str):
            return True

        path = path.split("?", 1)[0]
        if path in self.silenced_paths:
            return False
        if any(path.startswith(p) for p in self.silenced_prefixes):
            return False
        return True
