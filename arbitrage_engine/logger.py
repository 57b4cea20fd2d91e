# arbitrage_engine/logger.py
import asyncio
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, List, Optional

import aiofiles
from aiocsv import AsyncWriter

from .models import ExecutionEvent

AUDIT_HEADER = [
    "settled_at", "opportunity_id", "strategy", "route", "investment",
    "success", "profit_after_costs", "execution_time_ms", "gas_cost_sol", "failure_reason",
]


def event_to_row(event: ExecutionEvent) -> List[Any]:
    r = event.result
    return [
        datetime.fromtimestamp(event.settled_at, tz=timezone.utc).isoformat(),
        event.opportunity_id,
        event.strategy_type.value,
        event.route,
        f"{event.investment_amount:.4f}",
        "SUCCESS" if r.success else "FAILED",
        f"{r.profit_after_costs:.6f}",
        r.execution_time_ms,
        f"{r.gas_cost_sol:.8f}",
        r.failure_reason.value if r.failure_reason else "",
    ]


class AsyncAuditLogger:
    """
    Non-blocking audit trail of settled executions.
    Decouples disk I/O from the trading loop using an asyncio Queue.
    """
    def __init__(self, filepath: str):
        self.filepath = filepath
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None

    async def start(self):
        """
        Creates the file (with a header row) if missing and starts the background writer.
        """
        directory = os.path.dirname(self.filepath)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.filepath) or os.path.getsize(self.filepath) == 0:
            async with aiofiles.open(self.filepath, mode='w', newline='', encoding='utf-8') as f:
                writer = AsyncWriter(f, dialect='unix')
                await writer.writerow(AUDIT_HEADER)

        self._worker_task = asyncio.create_task(self._writer_worker())

    async def log_trade(self, data: List[Any]):
        """
        Non-blocking call to add a raw row to the queue.
        """
        await self._queue.put(data)

    async def on_execution(self, event: ExecutionEvent):
        """Observer hook for ArbitrageBot.subscribe."""
        await self.log_trade(event_to_row(event))

    async def stop(self):
        """Flush whatever is queued, then stop the writer."""
        if self._worker_task is None:
            return
        await self._queue.join()
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        self._worker_task = None

    async def _writer_worker(self):
        """
        Background consumer that writes to disk.
        """
        while True:
            row = await self._queue.get()
            try:
                async with aiofiles.open(self.filepath, mode='a', newline='', encoding='utf-8') as f:
                    writer = AsyncWriter(f, dialect='unix')
                    await writer.writerow(row)
            except OSError as e:
                # Fallback to stderr if disk I/O fails, don't crash the bot
                print(f"LOGGING FAILURE: {e}", file=sys.stderr)
            finally:
                self._queue.task_done()


def setup_console_logger(name: str, level: str = "INFO") -> logging.Logger:
    """
    Sets up the standard Python logger for console output.
    Child loggers (name.xxx) propagate to this one.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s | %(levelname)s | %(module)s | %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False

    return logger
