"""
Handler context model.

Request-scoped values the runner passes to every handler alongside the Request.
"""

import asyncio
import logging
from dataclasses import dataclass, field


@dataclass(frozen=True)
class HandlerContext:
    trace_id: str = ""
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("fdk.handler"))
    # Set once the runner starts shutting down; long-running handlers should watch it.
    shutdown: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def cancelled(self) -> bool:
        return self.shutdown.is_set()
