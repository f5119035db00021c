"""
Catalog search through the EBSCO Discovery Service (EDS) API.

EDS returns records as loosely structured "Items" (Name/Label/Data triples
whose Data holds HTML-escaped markup) plus optional holdings. This module
normalizes them into DisplayRecord objects the assistant can quote.

API Documentation: https://developer.ebsco.com/eds-api
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import EbscoConfig
from .tools import LlmTool, is_missing

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "Not available"

_TAG = re.compile(r"<[^>]+>")
_YEAR = re.compile(r"(\d{4})")


class CatalogSearchError(Exception):
    """Raised when a search yields nothing usable."""


@dataclass
class CopyInformation:
    """Where one copy sits on the shelves."""

    sublocation: str = NOT_AVAILABLE
    shelf_locator: str = NOT_AVAILABLE

    def to_dict(self) -> dict[str, str]:
        return {"Sublocation": self.sublocation, "ShelfLocator": self.shelf_locator}


@dataclass
class DisplayRecord:
    """A catalog record reduced to what a patron needs."""

    title: str
    author: str
    publication_year: int | None
    book_type: str
    subjects: str
    location_information: list[CopyInformation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "title": self.title,
            "author": self.author,
            "publicationYear": self.publication_year,
            "bookType": self.book_type,
            "subjects": self.subjects,
            "locationInformation": [c.to_dict() for c in self.location_information],
        }


# -----------------------------------------------------------------------------
# Field extraction
# -----------------------------------------------------------------------------


def clean_item_data(data: str) -> str:
    """Unescape EDS markup and strip its tags."""
    text = _TAG.sub(" ", html.unescape(data))
    return re.sub(r"\s+", " ", text).strip()


def extract_item_data(items: list[dict[str, Any]] | None, name: str) -> str:
    """Data of the first item with the given Name, or "Not available"."""
    if not isinstance(items, list) or not items:
        return NOT_AVAILABLE
    for item in items:
        if isinstance(item, dict) and item.get("Name") == name:
            data = clean_item_data(str(item.get("Data") or ""))
            return data or NOT_AVAILABLE
    return NOT_AVAILABLE


def extract_publication_year(items: list[dict[str, Any]] | None) -> int | None:
    """First four-digit number in the TitleSource item."""
    if not isinstance(items, list) or not items:
        return None
    match = _YEAR.search(extract_item_data(items, "TitleSource"))
    if match:
        return int(match.group(1))
    return None


def extract_subjects(items: list[dict[str, Any]] | None) -> str:
    return extract_item_data(items, "Subject")


def extract_location_information(record: dict[str, Any] | None) -> list[CopyInformation]:
    """Copies listed under the record's first holding."""
    holdings = (record or {}).get("Holdings")
    copies: list[CopyInformation] = []
    if isinstance(holdings, list) and holdings:
        first = holdings[0] or {}
        copy_list = (first.get("HoldingSimple") or {}).get("CopyInformationList")
        if isinstance(copy_list, list):
            for copy in copy_list:
                copies.append(
                    CopyInformation(
                        sublocation=copy.get("Sublocation") or NOT_AVAILABLE,
                        shelf_locator=copy.get("ShelfLocator") or NOT_AVAILABLE,
                    )
                )
    return copies or [CopyInformation()]


def to_display_record(record: dict[str, Any]) -> DisplayRecord:
    """Normalize one EDS record."""
    items = record.get("Items") or []
    return DisplayRecord(
        title=extract_item_data(items, "Title"),
        author=extract_item_data(items, "Author"),
        publication_year=extract_publication_year(items),
        book_type=(record.get("Header") or {}).get("PubType") or NOT_AVAILABLE,
        subjects=extract_subjects(items),
        location_information=extract_location_information(record),
    )


# -----------------------------------------------------------------------------
# API client
# -----------------------------------------------------------------------------


class EbscoClient:
    """Client for EDS authentication, sessions and search."""

    def __init__(self, config: EbscoConfig):
        self.config = config
        self.api_url = config.api_url.rstrip("/")
        self.timeout = config.timeout_seconds
        self._auth_token: str | None = None

    async def authenticate(self) -> str:
        """Get (and cache) a UID authentication token."""
        if self._auth_token:
            return self._auth_token

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.config.auth_url,
                json={
                    "UserId": self.config.get_user_id(),
                    "Password": self.config.get_password(),
                },
            )
            response.raise_for_status()
            self._auth_token = response.json()["AuthToken"]
            return self._auth_token

    async def _get(self, path: str, params: dict[str, Any], headers: dict[str, str] | None = None) -> Any:
        """GET an EDS endpoint, re-authenticating once if the token was rejected."""
        for attempt in range(2):
            token = await self.authenticate()
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.api_url}/{path}",
                    headers={"x-authenticationToken": token, **(headers or {})},
                    params=params,
                )
            if response.status_code == 401 and attempt == 0:
                logger.info("EDS rejected the auth token, re-authenticating")
                self._auth_token = None
                continue
            response.raise_for_status()
            return response.json()

    async def create_session(self) -> str:
        """Open a search session for the configured profile."""
        data = await self._get("createsession", {"profile": self.config.profile, "guest": "n"})
        return data["SessionToken"]

    async def search(self, session_token: str, query: str, num_of_books: int) -> list[dict[str, Any]]:
        """Run a search and return the raw records."""
        data = await self._get(
            "search",
            {
                "query": query,
                "resultsperpage": num_of_books,
                "view": "detailed",
                "includefacets": "n",
            },
            headers={"x-sessionToken": session_token},
        )
        return ((data.get("SearchResult") or {}).get("Data") or {}).get("Records") or []

    async def end_session(self, session_token: str) -> None:
        """Close a search session; failures are only logged."""
        try:
            await self._get("endsession", {"sessiontoken": session_token})
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Could not end EDS session: {e}")


async def search_for_book(client: EbscoClient, query: str, num_of_books: int) -> list[DisplayRecord]:
    """
    Search the catalog and normalize the results.

    Raises:
        CatalogSearchError: "No results found" when the search is empty,
            "No results found due to an error." when the API call fails.
    """
    session_token = None
    try:
        session_token = await client.create_session()
        records = await client.search(session_token, query, num_of_books)
        data = [to_display_record(r) for r in records]
    except (httpx.HTTPError, KeyError, TypeError, ValueError, AttributeError) as e:
        logger.error(f"Error querying the EBSCO API: {e}")
        raise CatalogSearchError("No results found due to an error.") from e
    finally:
        if session_token:
            await client.end_session(session_token)

    if not data:
        raise CatalogSearchError("No results found")
    return data


class CatalogSearchTool(LlmTool):
    """Lets the assistant look up books in the library catalog."""

    tool_name = "CatalogSearch"
    tool_description = (
        "This tool searches the library catalog for books and tells where copies are shelved."
    )
    tool_parameters_structure = {
        "query": "string [REQUIRED]",
        "numOfBooks": "number [OPTIONAL]",
    }

    def __init__(self, client: EbscoClient, default_num_of_books: int = 3):
        self.client = client
        self.default_num_of_books = default_num_of_books

    async def run_for_llm(self, tool_input: dict[str, Any]) -> str:
        query = tool_input.get("query")
        if is_missing(query):
            return (
                "Cannot search the catalog because missing parameter query. "
                "Ask the customer what they are looking for.\n"
            )

        num_of_books = self.default_num_of_books
        requested = tool_input.get("numOfBooks")
        if not is_missing(requested):
            try:
                num_of_books = max(1, int(requested))
            except (TypeError, ValueError):
                logger.debug(f"Ignoring non-numeric numOfBooks {requested!r}")

        try:
            records = await search_for_book(self.client, str(query), num_of_books)
        except CatalogSearchError as e:
            return f"{e}\n"

        lines = [f"Found {len(records)} record(s) for '{query}':"]
        for record in records:
            locations = "; ".join(
                f"{c.sublocation} {c.shelf_locator}" for c in record.location_information
            )
            year = record.publication_year if record.publication_year else NOT_AVAILABLE
            lines.append(
                f"- {record.title} by {record.author} ({year}), {record.book_type}. "
                f"Subjects: {record.subjects}. Location: {locations}"
            )
        return "\n".join(lines) + "\n"
