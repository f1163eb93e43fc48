import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from oggole.dependencies import get_document_index, get_metrics, require_crawler_key
from oggole.exceptions import StorageError
from oggole.metrics import Metrics
from oggole.schemas import BatchPagesRequest, BatchPagesResponse
from oggole.search import DocumentIndex

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["pages"])


@router.post(
    "/batch-pages",
    response_model=BatchPagesResponse,
    dependencies=[Depends(require_crawler_key)],
)
def batch_pages(
    payload: BatchPagesRequest,
    index: DocumentIndex = Depends(get_document_index),
    metrics: Metrics = Depends(get_metrics),
):
    """
    Bulk upsert from the crawler.

    Whole batch is rejected only for a bad API key. Records missing
    title, url or content are counted in error_count; the rest are stored.
    """
    try:
        result = index.upsert_pages(payload.pages)
    except SQLAlchemyError:
        metrics.database_errors.inc()
        logger.exception("Batch ingestion of %d pages failed", len(payload.pages))
        raise StorageError("Storing pages failed")

    metrics.pages_indexed.inc(result.success_count)
    logger.info(
        "Batch ingestion: %d stored, %d rejected of %d",
        result.success_count, result.error_count, result.total,
    )

    try:
        metrics.pages_in_database.set(index.count_pages())
    except SQLAlchemyError:
        logger.warning("Could not refresh page count", exc_info=True)

    return result.to_dict()
