"""
Hybrid search over the pages table and the crawler's bulk write path.

A page matches when its PostgreSQL search vector matches the stemmed
query in the requested language, or when the raw term appears in its
title or content. The substring branch catches brand names and partial
words that stemming misses; the lexical branch supplies the ranking.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import cast, func, or_, select
from sqlalchemy.dialects.postgresql import REGCONFIG
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import Select

from oggole.database import utcnow
from oggole.exceptions import SearchError, ValidationError
from oggole.languages import SearchLanguage, resolve_language
from oggole.metrics import Metrics
from oggole.models import Page

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUERY_LENGTH = 200
DEFAULT_RESULT_LIMIT = 50

REQUIRED_PAGE_FIELDS = ("title", "url", "content")
LIKE_ESCAPE = "/"


def validate_search_query(query: str, max_length: int = DEFAULT_MAX_QUERY_LENGTH) -> None:
    """Reject queries longer than max_length characters. Empty is allowed."""
    if len(query) > max_length:
        raise ValidationError(
            f"Search query too long (maximum {max_length} characters)",
            details={"max_length": max_length, "length": len(query)},
        )


def like_pattern(term: str) -> str:
    """Substring pattern with LIKE wildcards in the term taken literally."""
    escaped = term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    for wildcard in ("%", "_"):
        escaped = escaped.replace(wildcard, LIKE_ESCAPE + wildcard)
    return f"%{escaped}%"


def build_search_statement(
    term: str,
    language: SearchLanguage,
    limit: int = DEFAULT_RESULT_LIMIT,
    full_text: bool = True,
) -> Select:
    """
    SELECT for one search term.

    The text search configuration comes from the SearchLanguage enum and
    is sent as a bound parameter cast to regconfig, never spliced into SQL.
    Without full_text (non-PostgreSQL backends) only the substring branch runs.
    """
    pattern = like_pattern(term)
    substring = or_(
        Page.title.ilike(pattern, escape=LIKE_ESCAPE),
        Page.content.ilike(pattern, escape=LIKE_ESCAPE),
    )
    stmt = select(Page).where(Page.language == language.value)

    if not full_text:
        return stmt.where(substring).order_by(Page.title).limit(limit)

    ts_query = func.plainto_tsquery(cast(language.config, REGCONFIG), term)
    lexical = Page.search_vector.op("@@")(ts_query)
    rank = func.ts_rank(Page.search_vector, ts_query)
    return stmt.where(or_(lexical, substring)).order_by(rank.desc()).limit(limit)


@dataclass
class IngestResult:
    success_count: int = 0
    error_count: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.error_count

    def to_dict(self) -> dict[str, int]:
        return {
            "success_count": self.success_count,
            "error_count": self.error_count,
            "total": self.total,
        }


class DocumentIndex:
    """Storage access for pages. Raises SQLAlchemyError on storage failure."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def search(self, term: str, language: SearchLanguage, limit: int = DEFAULT_RESULT_LIMIT) -> list[Page]:
        with self._session_factory() as db:
            full_text = db.get_bind().dialect.name == "postgresql"
            stmt = build_search_statement(term, language, limit, full_text=full_text)
            return list(db.scalars(stmt).all())

    def count_pages(self) -> int:
        with self._session_factory() as db:
            return db.scalar(select(func.count()).select_from(Page)) or 0

    def upsert_pages(self, records: Iterable[Any]) -> IngestResult:
        """
        Insert or update pages by title.

        Malformed records (not a mapping, or missing title/url/content)
        are counted and skipped. Each record is written in its own
        savepoint so a constraint violation only loses that record.
        """
        result = IngestResult()
        with self._session_factory() as db:
            for record in records:
                page = _page_from_record(record)
                if page is None:
                    result.error_count += 1
                    continue
                try:
                    with db.begin_nested():
                        db.merge(page)
                    result.success_count += 1
                except SQLAlchemyError:
                    logger.warning("Failed to store page %r", page.title, exc_info=True)
                    result.error_count += 1
            db.commit()
        return result


def _page_from_record(record: Any) -> Optional[Page]:
    if not isinstance(record, dict):
        return None
    values = {}
    for field in REQUIRED_PAGE_FIELDS:
        value = record.get(field)
        if not isinstance(value, str) or not value.strip():
            return None
        values[field] = value.strip()
    language = record.get("language")
    return Page(
        title=values["title"],
        url=values["url"],
        content=values["content"],
        language=resolve_language(language if isinstance(language, str) else None).value,
        last_updated=utcnow(),
    )


class SearchService:
    """
    Validates search input, runs the hybrid query and reports search signals.
    """

    def __init__(
        self,
        index: DocumentIndex,
        metrics: Metrics,
        max_query_length: int = DEFAULT_MAX_QUERY_LENGTH,
        result_limit: int = DEFAULT_RESULT_LIMIT,
    ):
        self._index = index
        self._metrics = metrics
        self._max_query_length = max_query_length
        self._result_limit = result_limit

    def search(self, query: Optional[str], language: Optional[str] = None) -> list[Page]:
        query = query or ""
        validate_search_query(query, self._max_query_length)

        term = query.strip()
        if not term:
            return []

        search_language = resolve_language(language)
        self._metrics.search_queries.inc()
        try:
            pages = self._index.search(term, search_language, self._result_limit)
        except SQLAlchemyError:
            self._metrics.database_errors.inc()
            logger.exception("Search failed for query=%r language=%s", term, search_language.value)
            raise SearchError()

        if not pages:
            self._metrics.search_zero_results.inc()
        return pages
