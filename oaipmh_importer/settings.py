import asyncio
import logging
import os

from dataclasses import dataclass, replace
from typing import Callable, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_SEND_LIST_DELAY = 8000

DATA_DEST = os.environ.get('DATA_DEST', 'file:///tmp/oaipmh_importer')
TEMPORAL_HOST = os.environ.get('TEMPORAL_HOST', 'localhost:7233')
TASK_QUEUE = os.environ.get('TASK_QUEUE', 'oaipmh-importing-queue')
SETTINGS_RELOAD_INTERVAL = float(
    os.environ.get('SETTINGS_RELOAD_INTERVAL', '30'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


def _send_list_delay(environ) -> int:
    value = environ.get('IMPORTING_SEND_LIST_DELAY')
    if not value:
        return DEFAULT_SEND_LIST_DELAY
    try:
        return int(value)
    except ValueError:
        logger.warning(
            f"IMPORTING_SEND_LIST_DELAY={value!r} is not an integer, "
            f"using {DEFAULT_SEND_LIST_DELAY}"
        )
        return DEFAULT_SEND_LIST_DELAY


@dataclass(frozen=True)
class ImporterSettings:
    """process-wide defaults shared by every run"""
    send_list_delay: int = DEFAULT_SEND_LIST_DELAY
    oaipmh_adapter_uri: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None) -> "ImporterSettings":
        environ = os.environ if environ is None else environ
        return cls(
            send_list_delay=_send_list_delay(environ),
            oaipmh_adapter_uri=environ.get('OAIPMH_ADAPTER_URI') or None,
        )


class SettingsHolder(object):
    """
    Holds the current ImporterSettings snapshot.

    Readers take `current` and keep using that snapshot; `refresh` builds a
    new one and swaps the reference. Only the send list delay is picked up
    on refresh, the adapter uri stays what it was at startup.
    """

    def __init__(self, initial: ImporterSettings, environ=None):
        self._current = initial
        self._environ = environ
        self._listeners = []

    @classmethod
    def from_env(cls, environ=None) -> "SettingsHolder":
        return cls(ImporterSettings.from_env(environ), environ)

    @property
    def current(self) -> ImporterSettings:
        return self._current

    def listen(self, listener: Callable[[ImporterSettings], None]):
        self._listeners.append(listener)

    def refresh(self) -> ImporterSettings:
        if self._environ is None:
            load_dotenv(override=True)
            environ = os.environ
        else:
            environ = self._environ
        delay = _send_list_delay(environ)
        if delay == self._current.send_list_delay:
            return self._current

        self._current = replace(self._current, send_list_delay=delay)
        logger.info(f"send list delay changed to {delay}ms")
        for listener in self._listeners:
            listener(self._current)
        return self._current

    async def watch(self, interval: float = SETTINGS_RELOAD_INTERVAL):
        while True:
            await asyncio.sleep(interval)
            self.refresh()


importer_settings = SettingsHolder.from_env()
