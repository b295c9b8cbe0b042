import asyncio

import pytest
import requests
import requests_mock

from ..fetchers.Fetcher import FetchError, InvalidHarvestEndpoint
from ..fetchers.oai_fetcher import OaiFetcher
from ..settings import ImporterSettings
from .conftest import ADDRESS, fixture_content

DEFAULTS = ImporterSettings(send_list_delay=0, oaipmh_adapter_uri=ADDRESS)


def make_fetcher(config, breaker, settings=DEFAULTS):
    return OaiFetcher(config, settings, breaker)


def test_first_page_request(fast_breaker):
    fetcher = make_fetcher({"address": "https://data.example.org/oai"}, fast_breaker)
    request = fetcher.build_fetch_request()

    assert request.url == "https://data.example.org/oai"
    assert dict(request.params) == {
        "metadataPrefix": "dcat_ap",
        "verb": "ListRecords"
    }
    assert request.param("resumptionToken") is None


def test_continuation_request_keeps_prefix_and_address(fast_breaker):
    fetcher = make_fetcher(
        {"address": "https://data.example.org/oai", "metadata": "dcat"},
        fast_breaker
    )
    first = fetcher.build_fetch_request()
    second = fetcher.build_fetch_request("tok1")

    assert second.url == first.url
    assert second.param("metadataPrefix") == "dcat"
    assert second.param("resumptionToken") == "tok1"


def test_resource_is_appended_to_address(fast_breaker):
    fetcher = make_fetcher(
        {"address": "https://data.example.org", "resource": "oai/catalogue"},
        fast_breaker
    )
    assert fetcher.build_fetch_request().url == \
        "https://data.example.org/oai/catalogue"


def test_address_falls_back_to_adapter_uri(fast_breaker):
    fetcher = make_fetcher({"resource": "portal"}, fast_breaker)
    assert fetcher.build_fetch_request().url == f"{ADDRESS}/portal"


def test_missing_address_is_invalid(fast_breaker):
    with pytest.raises(InvalidHarvestEndpoint):
        make_fetcher({}, fast_breaker, ImporterSettings())


def test_queries_override_prefix_and_verb(fast_breaker):
    fetcher = make_fetcher({
        "address": ADDRESS,
        "queries": {
            "metadataPrefix": "dcat_ap_de",
            "verb": "ListIdentifiers",
            "set": "environment",
            "limit": 50
        }
    }, fast_breaker)
    params = dict(fetcher.build_fetch_request().params)

    assert params["metadataPrefix"] == "dcat_ap_de"
    assert params["verb"] == "ListIdentifiers"
    assert params["set"] == "environment"
    assert params["limit"] == "50"


def test_address_query_parameters_are_not_duplicated(fast_breaker):
    fetcher = make_fetcher(
        {"address": f"{ADDRESS}?metadataPrefix=oai_dc&set=maps"},
        fast_breaker
    )
    request = fetcher.build_fetch_request()

    assert request.url == ADDRESS
    assert [k for k, _ in request.params].count("metadataPrefix") == 1
    assert request.param("metadataPrefix") == "oai_dc"
    assert request.param("set") == "maps"
    assert fetcher.metadata_prefix == "dcat_ap"


def test_fetch_page_parses_response(fast_breaker):
    fetcher = make_fetcher({"address": ADDRESS}, fast_breaker)
    with requests_mock.Mocker() as m:
        m.get(ADDRESS, content=fixture_content("list_records_page1.xml"))
        page = asyncio.run(fetcher.fetch_page())

    assert page.success
    assert len(page.records) == 2
    assert page.token == "tok1"
    assert m.call_count == 1


def test_non_200_is_retried_then_raised(fast_breaker):
    fetcher = make_fetcher({"address": ADDRESS}, fast_breaker)
    with requests_mock.Mocker() as m:
        m.get(ADDRESS, status_code=503, reason="Service Unavailable",
              text="try later")
        with pytest.raises(FetchError) as excinfo:
            asyncio.run(fetcher.fetch_page())

    assert m.call_count == 3
    assert "Service Unavailable" in str(excinfo.value)
    assert "try later" in str(excinfo.value)


def test_connection_error_becomes_fetch_error(fast_breaker):
    fetcher = make_fetcher({"address": ADDRESS}, fast_breaker)
    with requests_mock.Mocker() as m:
        m.get(ADDRESS, exc=requests.exceptions.ConnectTimeout)
        with pytest.raises(FetchError):
            asyncio.run(fetcher.fetch_page())

    assert m.call_count == 3


def test_recovers_when_a_retry_succeeds(fast_breaker):
    fetcher = make_fetcher({"address": ADDRESS}, fast_breaker)
    with requests_mock.Mocker() as m:
        m.get(ADDRESS, [
            {"status_code": 500, "text": "boom"},
            {"content": fixture_content("list_records_page2.xml")},
        ])
        page = asyncio.run(fetcher.fetch_page("tok1"))

    assert m.call_count == 2
    assert [r.findtext("{http://www.openarchives.org/OAI/2.0/}header/"
                       "{http://www.openarchives.org/OAI/2.0/}identifier")
            for r in page.records] == ["C"]
    assert fast_breaker.failures == 0
