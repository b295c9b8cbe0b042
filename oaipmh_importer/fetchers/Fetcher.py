import asyncio
import logging
import requests

from dataclasses import dataclass
from typing import Optional

from ..utils.request_retry import CircuitBreaker, configure_http_session


logger = logging.getLogger(__name__)


class InvalidHarvestEndpoint(Exception):
    '''Raised when the harvest endpoint is invalid'''


class FetchError(Exception):
    pass


@dataclass(frozen=True)
class HarvestRequest:
    url: str
    params: tuple
    timeout: Optional[float] = None

    def param(self, key: str) -> Optional[str]:
        for k, v in self.params:
            if k == key:
                return v
        return None

    def as_kwargs(self) -> dict:
        return {
            "url": self.url,
            "params": list(self.params),
            "timeout": self.timeout
        }


class Fetcher(object):
    def __init__(
            self,
            params: dict,
            breaker: CircuitBreaker,
            session: Optional[requests.Session] = None,
            log=logger):
        """
        params: dict
            the run configuration carried by the pipe message
        breaker: CircuitBreaker
            retry policy wrapped around every page request
        session: requests.Session
            shared http session, one is configured if omitted
        log: logging.Logger or LoggerAdapter
            where per-run messages are written
        """
        self.params = params
        self.breaker = breaker
        self.session = session or configure_http_session()
        self.log = log

    async def fetch_page(self, resumption_token: Optional[str] = None):
        """
        builds and sends the request for one page and returns the parsed
        page as produced by check_page

        raises a FetchError once the breaker has given up on the request,
        or a CircuitOpenError when the breaker is open
        """
        request = self.build_fetch_request(resumption_token)
        self.log.debug(f"fetching {request.url} with {list(request.params)}")
        response = await self.breaker.execute(self.send, request)
        return self.check_page(response)

    async def send(self, request: HarvestRequest) -> requests.Response:
        try:
            response = await asyncio.to_thread(
                self.session.get, **request.as_kwargs())
        except requests.exceptions.RequestException as e:
            self.log.error(f"Sent metadata request: {e!r}")
            raise FetchError(f"unable to fetch {request.url}: {e}") from e

        if response.status_code != 200:
            self.log.warning(f"{response.reason} - {response.text}")
            raise FetchError(f"{response.reason}\n{response.text}")
        return response

    def build_fetch_request(
            self, resumption_token: Optional[str] = None) -> HarvestRequest:
        """build the HarvestRequest for the page following resumption_token

        resumption_token is None for the first page
        """
        raise NotImplementedError

    def check_page(self, response: requests.Response):
        """parses the http response of one page

        takes as an argument:
        https://docs.python-requests.org/en/latest/api/#requests.Response
        """
        raise NotImplementedError
