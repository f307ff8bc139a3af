"""Human-readable estimate and invoice numbers (EST-2026-0001)."""
import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from app.models import DocumentSequence
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

ESTIMATE_PREFIX = 'EST'
INVOICE_PREFIX = 'INV'


def fallback_document_number(prefix: str) -> str:
    """
    Locally built number: prefix, current year, last 6 digits of the epoch
    in milliseconds. Unique with high probability, not guaranteed.
    """
    year = utcnow().year
    suffix = str(int(time.time() * 1000))[-6:]
    return f"{prefix}-{year}-{suffix}"


def _allocate(session, organization_id: int, prefix: str, year: int) -> int:
    sequence = session.query(DocumentSequence).filter(
        DocumentSequence.organization_id == organization_id,
        DocumentSequence.document_type == prefix,
        DocumentSequence.year == year
    ).with_for_update().first()

    if sequence is None:
        sequence = DocumentSequence(
            organization_id=organization_id,
            document_type=prefix,
            year=year,
            last_value=0
        )
        session.add(sequence)

    sequence.last_value = (sequence.last_value or 0) + 1
    session.flush()
    return sequence.last_value


def next_document_number(session, organization_id: int, prefix: str) -> str:
    """
    Next sequential number for an organization and document type.

    The counter row is flushed inside the caller's transaction and committed
    together with the document. If the counter cannot be allocated the
    session is rolled back and a fallback number is returned instead.

    Must be called before the caller adds anything else to the session.
    """
    year = utcnow().year
    try:
        value = _allocate(session, organization_id, prefix, year)
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Numbering service unavailable for org {organization_id} ({prefix}), using fallback: {e}")
        return fallback_document_number(prefix)
    return f"{prefix}-{year}-{str(value).zfill(4)}"
