import json
import logging
import uuid

from typing import Optional

from . import settings
from .utils import storage

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "application/n-triples": "nt",
    "text/turtle": "ttl",
    "application/ld+json": "jsonld",
    "application/rdf+xml": "rdf",
    "application/trig": "trig",
    "application/n-quads": "nq",
    "application/xml": "xml",
    "application/json": "json",
}


class RunLogAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['run_id']}] {msg}", kwargs


class PipeContext(object):
    """
    One inbound pipe message: the run configuration plus the handle used to
    emit output and report a terminal failure.
    """

    def __init__(self, config: Optional[dict] = None, run_id=None):
        self.config = config or {}
        self.run_id = run_id or uuid.uuid4().hex
        self.log = RunLogAdapter(
            logging.getLogger(f"{__name__}.run"), {"run_id": self.run_id})

    def forward(self, payload: str, media_type: str, data_info: dict):
        raise NotImplementedError

    def set_failure(self, cause):
        raise NotImplementedError


class StoragePipe(PipeContext):
    """
    Writes every forwarded record to
    <data_dest>/<run_id>/data/<counter>.<ext> and the identifier list to
    <data_dest>/<run_id>/identifierList.json, on file:// or s3:// storage.
    """

    def __init__(self, config=None, run_id=None, data_dest=None):
        super(StoragePipe, self).__init__(config, run_id)
        self.data_uri = storage.join_uri(
            data_dest or settings.DATA_DEST, self.run_id)
        self.forwarded = 0
        self.summary_uri = None
        self.failure = None

    def forward(self, payload, media_type, data_info):
        if data_info.get("content") == "identifierList":
            self.summary_uri = storage.put_page_content(
                payload, storage.join_uri(self.data_uri, "identifierList.json"))
            return self.summary_uri

        extension = EXTENSIONS.get(media_type, "txt")
        page_uri = storage.join_uri(
            self.data_uri, "data", f"{data_info['counter']}.{extension}")
        storage.put_page_content(payload, page_uri)
        storage.put_page_content(
            json.dumps(data_info), f"{page_uri}.info.json")
        self.forwarded += 1
        return page_uri

    def set_failure(self, cause):
        self.failure = cause
        self.log.error(f"Pipe failed: {cause}")

    def status(self) -> dict:
        return {
            "run_id": self.run_id,
            "data_uri": self.data_uri,
            "records": self.forwarded,
            "identifier_list": self.summary_uri,
            "failure": str(self.failure) if self.failure is not None else None
        }
