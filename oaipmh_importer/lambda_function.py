import asyncio
import json
import logging
import sys

from dataclasses import dataclass, field, replace
from typing import Optional

from .fetchers.Fetcher import FetchError, InvalidHarvestEndpoint
from .fetchers.oai_fetcher import OaiFetcher
from .oai_response import MissingIdentifier, MissingMetadata, RecordExtractor
from .pipe import PipeContext, StoragePipe
from .settings import SettingsHolder, importer_settings
from .utils.request_retry import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FORMAT = "application/n-triples"

# shared by every run in this process
breaker = CircuitBreaker("oaipmh-breaker", max_retries=2, timeout=200.0)


@dataclass
class RunState:
    identifiers: list = field(default_factory=list)
    seen: set = field(default_factory=set)
    resumption_token: Optional[str] = None
    pages: int = 0

    def add(self, identifier: str) -> bool:
        """
        appends identifier, duplicates included, and returns False if it
        had already been seen in this run
        """
        duplicate = identifier in self.seen
        self.identifiers.append(identifier)
        self.seen.add(identifier)
        return not duplicate


async def import_metadata(
        pipe_context: PipeContext,
        settings_holder: SettingsHolder = importer_settings,
        page_breaker: Optional[CircuitBreaker] = None,
        session=None) -> Optional[RunState]:
    """
    Harvests every page of the endpoint configured in pipe_context.config,
    forwarding each record as soon as it is extracted, then forwards the
    identifier list after the configured delay.

    Returns the final RunState, or None if the endpoint reported an OAI-PMH
    error (which is passed to pipe_context.set_failure). Transport failures
    are raised.
    """
    config = pipe_context.config
    log = pipe_context.log

    fetcher = OaiFetcher(
        config,
        settings_holder.current,
        page_breaker or breaker,
        session=session,
        log=log
    )
    extractor = RecordExtractor(
        fetcher.metadata_prefix,
        config.get('outputFormat', DEFAULT_OUTPUT_FORMAT),
        fetcher.address,
        log
    )
    catalogue = config.get('catalogue')
    state = RunState()

    while True:
        page = await fetcher.fetch_page(state.resumption_token)
        state.pages += 1
        if not page.success:
            log.error(f"OAI-PMH error: {page.error_message}")
            pipe_context.set_failure(page.error)
            return None

        for record_element in page.records:
            try:
                record = extractor.extract_record(record_element)
            except MissingIdentifier as e:
                log.error(f"No identifier: {e}")
                continue
            except MissingMetadata as e:
                log.error(f"No metadata: {e}")
                continue

            if not state.add(record.identifier):
                log.warning(f"Identifier duplication: {record.identifier}")

            record = replace(
                record,
                counter=len(state.identifiers),
                total=page.total,
                catalogue=catalogue
            )
            pipe_context.forward(
                record.payload, record.media_type, record.data_info())
            log.info(f"Data imported: {json.dumps(record.data_info())}")
            log.debug(f"Data content: {record.payload}")

        if not page.token:
            break
        state.resumption_token = page.token

    log.info("Import metadata finished")
    # read late so a reloaded delay applies to runs already in progress
    delay = config.get('sendListDelay', settings_holder.current.send_list_delay)
    await asyncio.sleep(int(delay) / 1000)
    pipe_context.forward(
        json.dumps(state.identifiers, indent=2),
        "application/json",
        {"content": "identifierList", "catalogue": catalogue}
    )
    return state


async def handle_pipe(pipe_context: PipeContext, **kwargs) -> Optional[RunState]:
    """
    Runs one harvest for one inbound pipe message. Every fatal error ends
    up in exactly one pipe_context.set_failure call.
    """
    pipe_context.log.info("Import started.")
    try:
        return await import_metadata(pipe_context, **kwargs)
    except (FetchError, CircuitOpenError, InvalidHarvestEndpoint,
            TimeoutError) as e:
        pipe_context.log.error(f"Import failed: {e}")
        pipe_context.set_failure(e)
    except Exception as e:
        pipe_context.log.exception("Import failed")
        pipe_context.set_failure(e)
    return None


# AWS Lambda entry point
def lambda_handler(payload, context):
    if isinstance(payload, str):
        payload = json.loads(payload)

    logger.debug(f"import payload: {payload}")
    pipe = StoragePipe(payload.get('config', {}), run_id=payload.get('run_id'))
    asyncio.run(handle_pipe(pipe))

    status = pipe.status()
    return {
        'statusCode': 500 if status['failure'] else 200,
        'body': json.dumps(status)
    }


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(
        description="Import metadata from an OAI-PMH endpoint")
    parser.add_argument(
        'payload', help='json payload: {"config": {...}, "run_id": ...}')
    parser.add_argument(
        '-log',
        '--loglevel',
        default='info',
        help='log level (default: info)'
    )
    args = parser.parse_args(sys.argv[1:])
    logging.basicConfig(level=args.loglevel.upper())

    result = lambda_handler(args.payload, {})
    print(result['body'])
    sys.exit(0 if result['statusCode'] == 200 else 1)
