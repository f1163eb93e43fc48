from enum import Enum
from typing import Optional


class SearchLanguage(str, Enum):
    """
    Closed set of page languages and their PostgreSQL text search configurations.

    Both the search-vector trigger and the search query read the
    configuration from here, so stemming at index time and at query
    time always agree.
    """
    EN = "en"
    DA = "da"

    @property
    def config(self) -> str:
        return _TEXT_SEARCH_CONFIGS[self]


_TEXT_SEARCH_CONFIGS = {
    SearchLanguage.EN: "english",
    SearchLanguage.DA: "danish",
}

DEFAULT_LANGUAGE = SearchLanguage.EN


def resolve_language(value: Optional[str]) -> SearchLanguage:
    """Map request input onto the whitelist. Anything unknown searches as English."""
    if not value:
        return DEFAULT_LANGUAGE
    try:
        return SearchLanguage(value.strip().lower())
    except ValueError:
        return DEFAULT_LANGUAGE


def regconfig_case_sql(column: str) -> str:
    """CASE expression selecting the configuration for a language column."""
    whens = " ".join(
        f"WHEN '{language.value}' THEN '{language.config}'::regconfig"
        for language in SearchLanguage
    )
    return f"CASE {column} {whens} ELSE '{DEFAULT_LANGUAGE.config}'::regconfig END"
