import asyncio
from typing import Optional

import structlog

from config import Settings, get_settings
from feeds import read_transactions
from models import ProcessingSummary
from services import TransactionService

logger = structlog.get_logger()

_CLOSED = object()


async def produce(path: str, queue: asyncio.Queue, service: TransactionService, delimiter: str = ",") -> int:
    """Decode the file at ``path`` onto ``queue``, in input order."""
    sent = 0
    try:
        with open(path, newline="") as source:
            for transaction in read_transactions(source, delimiter, on_reject=lambda e: service.record_rejected()):
                await queue.put(transaction)
                sent += 1
    finally:
        await queue.put(_CLOSED)
    logger.debug("Producer finished", path=path, sent=sent)
    return sent


async def consume(queue: asyncio.Queue, service: TransactionService) -> int:
    """Apply queued transactions one at a time until the producer closes."""
    handled = 0
    while True:
        transaction = await queue.get()
        if transaction is _CLOSED:
            queue.task_done()
            break
        service.apply(transaction)
        handled += 1
        queue.task_done()
    return handled


async def run_pipeline(
    path: str,
    service: TransactionService,
    settings: Optional[Settings] = None,
) -> ProcessingSummary:
    settings = settings or get_settings()
    queue: asyncio.Queue = asyncio.Queue(maxsize=settings.queue_maxsize)

    producer = asyncio.create_task(produce(path, queue, service, settings.csv_delimiter))
    consumer = asyncio.create_task(consume(queue, service))

    try:
        await consumer
    except BaseException:
        producer.cancel()
        raise
    # The consumer drains everything queued before a producer failure surfaces.
    await producer

    summary = service.get_summary()
    logger.info(
        "Stream processed",
        path=path,
        applied=summary.applied,
        failed=summary.failed,
        rejected_records=summary.rejected_records,
        accounts_count=summary.accounts_count,
    )
    return summary
