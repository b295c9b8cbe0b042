import logging

from dataclasses import dataclass, field
from typing import Optional

from lxml import etree
from sickle import models, oaiexceptions

from .normalize import RDF_XML, normalize

logger = logging.getLogger(__name__)

NAMESPACE = {'oai2': 'http://www.openarchives.org/OAI/2.0/'}
OAI_ROOT = f"{{{NAMESPACE['oai2']}}}OAI-PMH"

DCAT_FORMATS = ["dcat_ap", "dcat"]
XML = "application/xml"


class MissingIdentifier(Exception):
    '''Raised when a record header has no identifier'''


class MissingMetadata(Exception):
    '''Raised when a record carries no metadata payload'''


@dataclass
class HarvestResponse:
    success: bool
    error: Optional[oaiexceptions.OAIError] = None
    records: list = field(default_factory=list)
    token: Optional[str] = None
    complete_list_size: Optional[int] = None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error)

    @property
    def total(self) -> int:
        """declared list size, or the number of records on this page"""
        if self.complete_list_size is not None:
            return self.complete_list_size
        return len(self.records)


@dataclass
class OutputRecord:
    identifier: str
    payload: str
    media_type: str
    counter: int = 0
    total: int = 0
    catalogue: Optional[str] = None

    def data_info(self) -> dict:
        return {
            "total": self.total,
            "counter": self.counter,
            "identifier": self.identifier,
            "catalogue": self.catalogue
        }


def oai_error(code: Optional[str], message: str) -> oaiexceptions.OAIError:
    # badResumptionToken -> BadResumptionToken, as sickle names them
    error_class = oaiexceptions.OAIError
    if code:
        error_class = getattr(
            oaiexceptions, code[0].upper() + code[1:], oaiexceptions.OAIError)
    if code and error_class is oaiexceptions.OAIError:
        message = f"{code}: {message}"
    return error_class(message)


def parse_page(content: bytes) -> HarvestResponse:
    parser = etree.XMLParser(
        resolve_entities=False, no_network=True, huge_tree=True)
    page = etree.fromstring(content, parser)
    if page.tag != OAI_ROOT:
        return HarvestResponse(
            success=False,
            error=oaiexceptions.OAIError(f"not an OAI-PMH response: {page.tag}")
        )

    error = page.find('oai2:error', NAMESPACE)
    if error is not None:
        message = (error.text or '').strip()
        return HarvestResponse(
            success=False, error=oai_error(error.get('code'), message))

    list_records = page.find('oai2:ListRecords', NAMESPACE)
    if list_records is None:
        return HarvestResponse(success=True)

    records = list_records.findall('oai2:record', NAMESPACE)

    token = None
    complete_list_size = None
    token_node = list_records.find('oai2:resumptionToken', NAMESPACE)
    if token_node is not None:
        token = (token_node.text or '').strip() or None
        size = token_node.get('completeListSize')
        if size and size.strip().isdigit():
            complete_list_size = int(size)

    return HarvestResponse(
        success=True,
        records=records,
        token=token,
        complete_list_size=complete_list_size
    )


def first_child(element) -> Optional[etree._Element]:
    for child in element:
        if isinstance(child.tag, str):
            return child
    return None


def serialize_element(element) -> str:
    return etree.tostring(
        element, pretty_print=True, encoding="unicode", with_tail=False)


class RecordExtractor(object):
    """
    Turns <record> elements of one run into OutputRecords. DCAT family
    records are normalized into output_format; anything else is forwarded
    as the XML it was harvested in.
    """

    def __init__(self, metadata_prefix, output_format, base_uri, log=logger):
        self.metadata_prefix = metadata_prefix
        self.output_format = output_format
        self.base_uri = base_uri
        self.log = log

    @property
    def normalizes(self) -> bool:
        return self.metadata_prefix in DCAT_FORMATS

    def extract_record(self, record: etree._Element) -> OutputRecord:
        header_node = record.find('oai2:header', NAMESPACE)
        identifier = None
        if header_node is not None:
            identifier = (models.Header(header_node).identifier or '').strip()

        metadata_node = record.find('oai2:metadata', NAMESPACE)
        dataset = first_child(metadata_node) if metadata_node is not None else None

        if not identifier:
            raise MissingIdentifier(
                serialize_element(dataset if dataset is not None else record))
        if dataset is None:
            raise MissingMetadata(identifier)

        output = serialize_element(dataset)
        if not self.normalizes:
            return OutputRecord(identifier, output, XML)

        try:
            payload, media_type = normalize(
                output, self.base_uri, self.output_format)
        except Exception:
            # forward what was harvested rather than lose the record
            self.log.error(
                f"Normalize model of {identifier}", exc_info=True)
            payload, media_type = output, RDF_XML
        return OutputRecord(identifier, payload, media_type)
