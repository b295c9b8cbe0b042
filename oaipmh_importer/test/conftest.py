import os

import pytest
import tenacity

from ..pipe import PipeContext
from ..settings import ImporterSettings, SettingsHolder
from ..utils.request_retry import CircuitBreaker

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")

ADDRESS = "http://example.org/oai"

OAI_ENVELOPE = """<?xml version="1.0" encoding="UTF-8"?>
<OAI-PMH xmlns="http://www.openarchives.org/OAI/2.0/">
  <responseDate>2024-03-01T10:00:00Z</responseDate>
  <request verb="ListRecords">{address}</request>
  <ListRecords>
{records}
{token}
  </ListRecords>
</OAI-PMH>
"""

DCAT_RECORD = """    <record>
      <header>{identifier}<datestamp>2024-02-28</datestamp></header>
      <metadata>
        <dcat:Dataset xmlns:dcat="http://www.w3.org/ns/dcat#"
                      xmlns:dct="http://purl.org/dc/terms/"
                      xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
                      rdf:about="http://example.org/datasets/{name}">
          <dct:title>{name}</dct:title>
        </dcat:Dataset>
      </metadata>
    </record>"""


def fixture_content(filename) -> bytes:
    with open(os.path.join(FIXTURES, filename), "rb") as f:
        return f.read()


def dcat_record(identifier, name=None) -> str:
    header_identifier = (
        f"<identifier>{identifier}</identifier>" if identifier is not None
        else ""
    )
    return DCAT_RECORD.format(
        identifier=header_identifier, name=name or identifier or "anonymous")


def oai_page(records, token=None, complete_list_size=None) -> bytes:
    token_element = ""
    if token is not None or complete_list_size is not None:
        size = (
            f' completeListSize="{complete_list_size}"'
            if complete_list_size is not None else ""
        )
        token_element = f"    <resumptionToken{size}>{token or ''}</resumptionToken>"
    return OAI_ENVELOPE.format(
        address=ADDRESS,
        records="\n".join(records),
        token=token_element
    ).encode("utf-8")


class RecordingPipe(PipeContext):
    """keeps everything forwarded in memory"""

    def __init__(self, config=None, run_id="test-run"):
        super(RecordingPipe, self).__init__(config, run_id)
        self.forwarded = []
        self.failures = []

    def forward(self, payload, media_type, data_info):
        self.forwarded.append((payload, media_type, data_info))

    def set_failure(self, cause):
        self.failures.append(cause)

    @property
    def records(self):
        return [
            f for f in self.forwarded
            if f[2].get("content") != "identifierList"
        ]

    @property
    def summaries(self):
        return [
            f for f in self.forwarded
            if f[2].get("content") == "identifierList"
        ]


@pytest.fixture
def settings_holder():
    return SettingsHolder(
        ImporterSettings(send_list_delay=0, oaipmh_adapter_uri=ADDRESS),
        environ={"IMPORTING_SEND_LIST_DELAY": "0"}
    )


@pytest.fixture
def fast_breaker():
    return CircuitBreaker(
        "test-breaker",
        max_failures=5,
        max_retries=2,
        timeout=5.0,
        reset_timeout=60.0,
        wait=tenacity.wait_none()
    )
