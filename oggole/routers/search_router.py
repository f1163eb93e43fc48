from typing import Optional

from fastapi import APIRouter, Depends, Query

from oggole.schemas import PageResponse
from oggole.search import SearchService
from oggole.dependencies import get_search_service

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/search", response_model=list[PageResponse])
def search(
    q: Optional[str] = Query(None),
    language: Optional[str] = Query(None),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Hybrid full-text + substring search.

    Empty query returns []. Unknown languages search as English.
    """
    return search_service.search(q, language)
