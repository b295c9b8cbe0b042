"""
RDF normalization of harvested metadata.

DCAT records arrive as RDF/XML fragments cut out of an OAI-PMH envelope. They
are pre-processed into a standalone RDF/XML document, parsed into an rdflib
Graph relative to the harvest endpoint and serialized into the requested
output format.
"""
import logging
from typing import Tuple, Union

import rdflib
from lxml import etree

logger = logging.getLogger(__name__)
# rdflib is noisy about every odd literal in upstream data
logging.getLogger('rdflib.term').setLevel(logging.ERROR)

RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
RDF_XML = "application/rdf+xml"

URI_ATTRIBUTES = [
    f"{{{RDF_NS}}}about",
    f"{{{RDF_NS}}}resource",
    f"{{{RDF_NS}}}datatype",
]

# media type -> rdflib plugin name
RDFLIB_FORMATS = {
    "application/rdf+xml": "xml",
    "application/n-triples": "nt",
    "text/turtle": "turtle",
    "application/x-turtle": "turtle",
    "text/n3": "n3",
    "application/ld+json": "json-ld",
    "application/trig": "trig",
    "application/n-quads": "nquads",
    "application/trix": "trix",
}


def rdflib_format(media_type: str) -> str:
    key = media_type.split(';')[0].strip().lower()
    return RDFLIB_FORMATS.get(key, media_type)


def clean_uri(value: str) -> str:
    return value.strip().replace(" ", "%20")


def pre_process(content: Union[str, bytes]) -> Tuple[bytes, str]:
    """
    Turns an RDF/XML fragment into a standalone RDF/XML document: the
    fragment is wrapped in rdf:RDF unless it already is one, and whitespace
    in rdf:about, rdf:resource and rdf:datatype values is cleaned up.

    Returns the document and its media type.
    """
    if isinstance(content, str):
        content = content.encode('utf-8')

    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    root = etree.fromstring(content, parser)

    if root.tag != f"{{{RDF_NS}}}RDF":
        wrapper = etree.Element(f"{{{RDF_NS}}}RDF", nsmap={"rdf": RDF_NS})
        wrapper.append(root)
        root = wrapper

    for element in root.iter(tag=etree.Element):
        for attribute in URI_ATTRIBUTES:
            value = element.get(attribute)
            if value is not None:
                element.set(attribute, clean_uri(value))

    return etree.tostring(root, xml_declaration=True, encoding="utf-8"), RDF_XML


def read_graph(content: bytes, media_type: str, base_uri: str) -> rdflib.Graph:
    graph = rdflib.Graph()
    graph.parse(data=content, format=rdflib_format(media_type), publicID=base_uri)
    return graph


def normalize(
        xml_fragment: str,
        base_uri: str,
        output_format: str) -> Tuple[str, str]:
    """
    Re-serializes an RDF/XML fragment into output_format, resolving relative
    URIs against base_uri. Returns (payload, media type).

    Raises whatever lxml or rdflib raise; callers decide what to do with a
    record that cannot be normalized.
    """
    content, content_type = pre_process(xml_fragment)
    graph = read_graph(content, content_type, base_uri)
    logger.debug(f"normalized {len(graph)} triples into {output_format}")
    return graph.serialize(format=rdflib_format(output_format)), output_format
