"""Tests for EBSCO catalog search and record normalization."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from library_chat_server.catalog import (
    NOT_AVAILABLE,
    CatalogSearchError,
    CatalogSearchTool,
    EbscoClient,
    clean_item_data,
    extract_item_data,
    extract_location_information,
    extract_publication_year,
    search_for_book,
    to_display_record,
)
from library_chat_server.config import EbscoConfig

SAMPLE_RECORD = {
    "Header": {"PubType": "Book"},
    "Items": [
        {"Name": "Title", "Label": "Title", "Data": "Project Hail Mary"},
        {
            "Name": "Author",
            "Label": "Authors",
            "Data": "&lt;searchLink fieldCode=&quot;AR&quot;&gt;Weir, Andy&lt;/searchLink&gt;",
        },
        {"Name": "TitleSource", "Label": "Publication", "Data": "New York : Ballantine, 2021."},
        {"Name": "Subject", "Label": "Subjects", "Data": "Space flight &amp; astronauts"},
    ],
    "Holdings": [
        {
            "HoldingSimple": {
                "CopyInformationList": [
                    {"Sublocation": "King Library 3rd floor", "ShelfLocator": "PS3623 .E432"}
                ]
            }
        }
    ],
}


class TestExtractors:
    """Test field extraction from raw EDS records."""

    def test_clean_item_data(self):
        assert clean_item_data("&lt;b&gt;Bold&lt;/b&gt;  text") == "Bold text"

    def test_extract_item_data(self):
        assert extract_item_data(SAMPLE_RECORD["Items"], "Author") == "Weir, Andy"

    def test_extract_item_data_missing(self):
        assert extract_item_data(SAMPLE_RECORD["Items"], "ISBN") == NOT_AVAILABLE
        assert extract_item_data([], "Title") == NOT_AVAILABLE
        assert extract_item_data(None, "Title") == NOT_AVAILABLE

    def test_extract_publication_year(self):
        assert extract_publication_year(SAMPLE_RECORD["Items"]) == 2021

    def test_extract_publication_year_missing(self):
        assert extract_publication_year([{"Name": "TitleSource", "Data": "n.d."}]) is None
        assert extract_publication_year([]) is None

    def test_location_information(self):
        copies = extract_location_information(SAMPLE_RECORD)
        assert copies[0].to_dict() == {
            "Sublocation": "King Library 3rd floor",
            "ShelfLocator": "PS3623 .E432",
        }

    @pytest.mark.parametrize(
        "record",
        [
            {},
            {"Holdings": []},
            {"Holdings": [{"HoldingSimple": {"CopyInformationList": []}}]},
            {"Holdings": [{}]},
        ],
    )
    def test_location_information_defaults(self, record):
        """Missing or empty holdings normalize to one "Not available" copy."""
        copies = extract_location_information(record)
        assert [c.to_dict() for c in copies] == [
            {"Sublocation": NOT_AVAILABLE, "ShelfLocator": NOT_AVAILABLE}
        ]

    def test_to_display_record(self):
        record = to_display_record(SAMPLE_RECORD)
        data = record.to_dict()
        assert data["title"] == "Project Hail Mary"
        assert data["author"] == "Weir, Andy"
        assert data["publicationYear"] == 2021
        assert data["bookType"] == "Book"
        assert data["subjects"] == "Space flight & astronauts"

    def test_to_display_record_sparse(self):
        record = to_display_record({})
        assert record.title == NOT_AVAILABLE
        assert record.book_type == NOT_AVAILABLE
        assert record.publication_year is None


@pytest.fixture
def ebsco_client():
    client = AsyncMock(spec=EbscoClient)
    client.create_session.return_value = "session-1"
    return client


class TestSearchForBook:
    """Test search_for_book error mapping."""

    async def test_returns_records(self, ebsco_client):
        ebsco_client.search.return_value = [SAMPLE_RECORD]
        records = await search_for_book(ebsco_client, "hail mary", 3)

        assert records[0].title == "Project Hail Mary"
        ebsco_client.search.assert_awaited_once_with("session-1", "hail mary", 3)
        ebsco_client.end_session.assert_awaited_once_with("session-1")

    async def test_no_results(self, ebsco_client):
        ebsco_client.search.return_value = []
        with pytest.raises(CatalogSearchError, match="^No results found$"):
            await search_for_book(ebsco_client, "zzz", 3)

    async def test_api_failure(self, ebsco_client):
        ebsco_client.search.side_effect = httpx.ConnectError("down")
        with pytest.raises(CatalogSearchError, match="No results found due to an error."):
            await search_for_book(ebsco_client, "zzz", 3)
        ebsco_client.end_session.assert_awaited_once()


class TestEbscoClient:
    """Test EbscoClient HTTP calls."""

    async def test_authenticate_and_search(self, mock_response):
        config = EbscoConfig(user_id="user", password="pass")
        client = EbscoClient(config)

        with patch("httpx.AsyncClient") as MockClient:
            mock_client = AsyncMock()
            mock_client.post.return_value = mock_response({"AuthToken": "auth-1"})
            mock_client.get.return_value = mock_response(
                {"SearchResult": {"Data": {"Records": [SAMPLE_RECORD]}}}
            )
            mock_client.__aenter__.return_value = mock_client
            mock_client.__aexit__.return_value = None
            MockClient.return_value = mock_client

            records = await client.search("session-1", "hail mary", 2)

            assert records == [SAMPLE_RECORD]
            assert mock_client.post.call_args.kwargs["json"] == {
                "UserId": "user",
                "Password": "pass",
            }
            headers = mock_client.get.call_args.kwargs["headers"]
            assert headers == {"x-authenticationToken": "auth-1", "x-sessionToken": "session-1"}
            assert mock_client.get.call_args.kwargs["params"]["resultsperpage"] == 2

    async def test_auth_token_cached(self, mock_response):
        client = EbscoClient(EbscoConfig(user_id="u", password="p"))

        with patch("httpx.AsyncClient") as MockClient:
            mock_client = AsyncMock()
            mock_client.post.return_value = mock_response({"AuthToken": "auth-1"})
            mock_client.__aenter__.return_value = mock_client
            mock_client.__aexit__.return_value = None
            MockClient.return_value = mock_client

            assert await client.authenticate() == "auth-1"
            assert await client.authenticate() == "auth-1"
            assert mock_client.post.await_count == 1


    async def test_rejected_token_reauthenticates_once(self, mock_response):
        """An expired AuthToken is dropped and the request retried with a fresh one."""
        client = EbscoClient(EbscoConfig(user_id="u", password="p"))

        with patch("httpx.AsyncClient") as MockClient:
            mock_client = AsyncMock()
            mock_client.post.side_effect = [
                mock_response({"AuthToken": "auth-1"}),
                mock_response({"AuthToken": "auth-2"}),
            ]
            mock_client.get.side_effect = [
                mock_response({"ErrorDescription": "Auth Token Invalid"}, status_code=401),
                mock_response({"SessionToken": "session-2"}),
            ]
            mock_client.__aenter__.return_value = mock_client
            mock_client.__aexit__.return_value = None
            MockClient.return_value = mock_client

            assert await client.create_session() == "session-2"
            assert mock_client.post.await_count == 2
            tokens = [c.kwargs["headers"]["x-authenticationToken"] for c in mock_client.get.call_args_list]
            assert tokens == ["auth-1", "auth-2"]

    async def test_second_rejection_raises(self, mock_response):
        client = EbscoClient(EbscoConfig(user_id="u", password="p"))

        with patch("httpx.AsyncClient") as MockClient:
            mock_client = AsyncMock()
            mock_client.post.return_value = mock_response({"AuthToken": "auth-1"})
            mock_client.get.return_value = mock_response({}, status_code=401)
            mock_client.__aenter__.return_value = mock_client
            mock_client.__aexit__.return_value = None
            MockClient.return_value = mock_client

            with pytest.raises(httpx.HTTPStatusError):
                await client.create_session()
            assert mock_client.get.await_count == 2

    async def test_end_session_failure_keeps_search_error(self):
        """A broken auth reply while closing the session leaves the search error intact."""
        client = EbscoClient(EbscoConfig(user_id="u", password="p"))

        with (
            patch.object(client, "create_session", AsyncMock(return_value="session-1")),
            patch.object(client, "search", AsyncMock(side_effect=httpx.ConnectError("down"))),
            patch.object(client, "authenticate", AsyncMock(side_effect=KeyError("AuthToken"))),
        ):
            with pytest.raises(CatalogSearchError, match="No results found due to an error."):
                await search_for_book(client, "zzz", 3)
            client.authenticate.assert_awaited_once()

class TestCatalogSearchTool:
    """Test the agent-facing catalog tool."""

    async def test_missing_query(self, ebsco_client):
        tool = CatalogSearchTool(ebsco_client)
        text = await tool.run_for_llm({"query": "undefined"})
        assert "missing parameter query" in text
        ebsco_client.create_session.assert_not_awaited()

    async def test_formats_results(self, ebsco_client):
        ebsco_client.search.return_value = [SAMPLE_RECORD]
        tool = CatalogSearchTool(ebsco_client, default_num_of_books=3)
        text = await tool.run_for_llm({"query": "hail mary", "numOfBooks": "1"})

        assert "Project Hail Mary by Weir, Andy (2021)" in text
        assert "King Library 3rd floor PS3623 .E432" in text
        ebsco_client.search.assert_awaited_once_with("session-1", "hail mary", 1)

    async def test_search_error_becomes_text(self, ebsco_client):
        ebsco_client.search.return_value = []
        text = await CatalogSearchTool(ebsco_client).run_for_llm({"query": "zzz"})
        assert text == "No results found\n"
