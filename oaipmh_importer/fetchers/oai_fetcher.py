import json
import logging
from urllib.parse import parse_qsl

import requests

from .Fetcher import Fetcher, HarvestRequest, InvalidHarvestEndpoint
from ..oai_response import HarvestResponse, parse_page
from ..settings import ImporterSettings

logger = logging.getLogger(__name__)

DEFAULT_METADATA_PREFIX = "dcat_ap"


def query_value(value) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


class OaiFetcher(Fetcher):

    def __init__(
            self,
            params: dict,
            settings: ImporterSettings,
            breaker,
            session=None,
            log=logger,
            timeout=None):
        super(OaiFetcher, self).__init__(params, breaker, session, log)

        address = params.get('address', settings.oaipmh_adapter_uri)
        if not address:
            raise InvalidHarvestEndpoint(
                "no address configured and no default adapter uri set")

        # keep parameters already in the configured address, e.g.
        # "https://example.org/oai?set=datasets"
        base, _, query = address.partition('?')
        if 'resource' in params:
            base = f"{base}/{params['resource']}"
        self.address = base
        self.address_query = parse_qsl(query, keep_blank_values=True)

        self.metadata_prefix = params.get('metadata', DEFAULT_METADATA_PREFIX)
        self.queries = params.get('queries') or {}
        self.timeout = timeout

    def build_fetch_request(self, resumption_token=None) -> HarvestRequest:
        query = dict(self.address_query)
        query.setdefault('metadataPrefix', self.metadata_prefix)
        for key, value in self.queries.items():
            query[key] = query_value(value)
        query.setdefault('verb', 'ListRecords')
        if resumption_token is not None:
            query['resumptionToken'] = resumption_token

        return HarvestRequest(
            url=self.address,
            params=tuple(query.items()),
            timeout=self.timeout
        )

    def check_page(self, http_resp: requests.Response) -> HarvestResponse:
        page = parse_page(http_resp.content)
        if page.success:
            self.log.debug(
                f"fetched page - {len(page.records)} records, "
                f"token {page.token!r}"
            )
        return page
