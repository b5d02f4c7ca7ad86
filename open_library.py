"""Open Library metadata lookups.

Open Library answers in several shapes: descriptions are sometimes a plain
string and sometimes ``{"type": ..., "value": text}``, publish dates are free
text ("March 2004", "c1999"), and any field may be missing. This module turns
all of it into :class:`BookMetadata` and :class:`SearchResult`.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from errors import InvalidInput, MetadataNotFound, UpstreamUnavailable
from http_client import get_http_client

logger = logging.getLogger(__name__)

COVER_URL = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"
UNKNOWN = "Unknown"

_YEAR_RE = re.compile(r"\d{4}")


@dataclass
class BookMetadata:
    """Descriptive data for one title, whichever endpoint it came from."""
    title: str
    author: str = UNKNOWN
    published_year: Optional[int] = None
    cover_url: Optional[str] = None
    summary: Optional[str] = None
    work_key: Optional[str] = None
    subjects: List[str] = field(default_factory=list)


@dataclass
class SearchResult:
    title: str
    author: str
    published_year: Optional[int]
    isbn: Optional[str]
    work_key: Optional[str]
    cover_url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "published_year": self.published_year,
            "isbn": self.isbn,
            "work_key": self.work_key,
            "cover_url": self.cover_url,
        }


def extract_year(publish_date: Optional[str]) -> Optional[int]:
    """First run of four digits in a free-text date, else None."""
    if not publish_date:
        return None
    match = _YEAR_RE.search(str(publish_date))
    return int(match.group(0)) if match else None


def normalize_description(value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and value.get("value"):
        return str(value["value"])
    return None


def _cover_from_id(cover_id: Any) -> Optional[str]:
    # Open Library uses -1 for "no cover"
    if isinstance(cover_id, int) and cover_id > 0:
        return COVER_URL.format(cover_id=cover_id)
    return None


class OpenLibraryService:
    """Read-only client for the Open Library search, edition and work APIs."""

    def __init__(self, client: Optional[httpx.Client] = None, base_url: Optional[str] = None,
                 search_limit: Optional[int] = None) -> None:
        self._client = client
        self.base_url = (base_url or settings.openlibrary_base_url).rstrip("/")
        self.search_limit = search_limit or settings.search_result_limit

    @property
    def client(self) -> httpx.Client:
        return self._client or get_http_client()

    # ------------------------- Public lookups ------------------------- #
    def search(self, query: str) -> List[SearchResult]:
        """Keyword search, truncated to ``search_limit`` candidates."""
        if not query or not query.strip():
            raise InvalidInput("Search query cannot be empty.")

        resp = self._get("/search.json", params={"q": query.strip()})
        if resp.status_code != 200:
            raise self._upstream_error(resp, "search")

        content_type = resp.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            logger.warning(f"Open Library search returned non-JSON content ({content_type!r}); returning no results")
            return []
        try:
            data = resp.json()
        except ValueError:
            logger.warning("Open Library search returned an undecodable body; returning no results")
            return []
        if not isinstance(data, dict):
            logger.warning(f"Open Library search returned a JSON {type(data).__name__}, not an object; returning no results")
            return []

        results = []
        for doc in (data.get("docs") or [])[: self.search_limit]:
            authors = doc.get("author_name") or []
            isbns = doc.get("isbn") or []
            results.append(SearchResult(
                title=doc.get("title") or UNKNOWN,
                author=authors[0] if authors else UNKNOWN,
                published_year=doc.get("first_publish_year"),
                isbn=isbns[0] if isbns else None,
                work_key=doc.get("key"),
                cover_url=_cover_from_id(doc.get("cover_i")),
            ))
        return results

    def get_by_isbn(self, isbn: str) -> BookMetadata:
        bibkey = f"ISBN:{isbn}"
        resp = self._get("/api/books", params={"bibkeys": bibkey, "format": "json", "jscmd": "data"})
        if resp.status_code != 200:
            raise self._upstream_error(resp, f"ISBN lookup for {isbn}")

        edition = self._json(resp).get(bibkey)
        if not edition or not edition.get("title"):
            raise MetadataNotFound(f"No Open Library record for ISBN {isbn}.")

        authors = [a for a in (edition.get("authors") or []) if isinstance(a, dict)]
        author = authors[0].get("name") if authors else None
        cover = edition.get("cover") or {}
        works = edition.get("works") or []
        work_key = works[0].get("key") if works and isinstance(works[0], dict) else None

        # The work only adds the description; the edition alone is enough to import
        summary = None
        if work_key:
            try:
                work = self._fetch_work(work_key)
            except UpstreamUnavailable:
                logger.warning(f"Could not fetch work {work_key} for ISBN {isbn}; importing without a summary")
                work = None
            summary = normalize_description(work.get("description")) if work else None

        return BookMetadata(
            title=edition["title"],
            author=author or UNKNOWN,
            published_year=extract_year(edition.get("publish_date")),
            cover_url=cover.get("large") or cover.get("medium"),
            summary=summary,
            work_key=work_key,
            subjects=[s.get("name") for s in (edition.get("subjects") or []) if isinstance(s, dict) and s.get("name")][:10],
        )

    def get_by_work_key(self, work_key: str) -> BookMetadata:
        work = self._fetch_work(work_key)
        if not work or not work.get("title"):
            raise MetadataNotFound(f"No Open Library record for work {work_key}.")

        author = UNKNOWN
        for ref in work.get("authors") or []:
            key = (ref.get("author") or {}).get("key") if isinstance(ref, dict) else None
            if key:
                author = self._fetch_author_name(key) or UNKNOWN
                break

        covers = work.get("covers") or []
        return BookMetadata(
            title=work["title"],
            author=author,
            published_year=extract_year(work.get("first_publish_date")),
            cover_url=_cover_from_id(covers[0]) if covers else None,
            summary=normalize_description(work.get("description")),
            work_key=work.get("key") or work_key,
            subjects=[s for s in (work.get("subjects") or []) if isinstance(s, str)][:10],
        )

    # ------------------------- HTTP helpers ------------------------- #
    def _fetch_work(self, work_key: str) -> Optional[dict]:
        """Work JSON, or None when Open Library does not know the key."""
        resp = self._get(f"{work_key}.json")
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise self._upstream_error(resp, f"work lookup for {work_key}")
        return self._json(resp)

    def _fetch_author_name(self, author_key: str) -> Optional[str]:
        resp = self._get(f"{author_key}.json")
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise self._upstream_error(resp, f"author lookup for {author_key}")
        return self._json(resp).get("name")

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.client.get(url, params=params)
        except httpx.TimeoutException as exc:
            logger.warning(f"Open Library request timed out: {url}")
            raise UpstreamUnavailable("Open Library did not answer in time.") from exc
        except httpx.RequestError as exc:
            logger.warning(f"Open Library request failed: {url}: {exc}")
            raise UpstreamUnavailable("Cannot reach Open Library.") from exc

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Open Library returned a malformed response.") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _upstream_error(resp: httpx.Response, what: str) -> UpstreamUnavailable:
        logger.warning(f"Open Library {what} failed with HTTP {resp.status_code}")
        return UpstreamUnavailable(f"Open Library {what} failed (HTTP {resp.status_code}).")
