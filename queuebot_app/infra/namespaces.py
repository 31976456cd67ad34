# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/namespaces.py

class REDIS:
    class RATE_LIMIT:
        """
        Per-session burst window (sorted set of request timestamps).

        Format: {BURST}:{session_id}
        """
        BURST = "queuebot:rl:burst"

    class CREDITS:
        """
        Per-session credit balance (plain integer counter).

        Format: {BALANCE}:{session_id}
        """
        BALANCE = "queuebot:credits:balance"

    class JOBS:
        QUEUE = "queuebot:jobs:queue"
        RESULTS = "queuebot:jobs:results"


def session_key(prefix: str, session_id: str) -> str:
    return f"{prefix}:{session_id}"
