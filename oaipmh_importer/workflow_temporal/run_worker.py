import asyncio
import argparse
import logging

from temporalio.client import Client
from temporalio.worker import Worker

from .. import settings
from .activities import import_oaipmh
from .workflows import ImportOaipmhWorkflow

logger = logging.getLogger(__name__)


async def main(temporal_host: str, task_queue: str):
    # Create client connected to server at the given address
    client = await Client.connect(temporal_host)

    # pick up IMPORTING_SEND_LIST_DELAY changes while the worker runs
    watcher = asyncio.create_task(
        settings.importer_settings.watch(settings.SETTINGS_RELOAD_INTERVAL))

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=[ImportOaipmhWorkflow],
        activities=[import_oaipmh]
    )
    logger.info(f"listening on {task_queue} at {temporal_host}")
    try:
        await worker.run()
    finally:
        watcher.cancel()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Run the OAI-PMH importing worker")
    parser.add_argument('--host', default=settings.TEMPORAL_HOST)
    parser.add_argument('--task-queue', default=settings.TASK_QUEUE)
    args = parser.parse_args()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    asyncio.run(main(args.host, args.task_queue))
