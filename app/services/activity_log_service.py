"""
Activity logging service - append-only trail of what happened to estimates,
invoices and the rest of an organization's records.
"""
import csv
import io
import logging

from flask import has_request_context, request

from app.models import ActivityLog, AppUser
from app.models.activity_log import ActivityAction, EntityType
from app.utils.dates import utcnow
from app.utils.formatters import format_datetime
from app.utils.side_effects import run_best_effort

logger = logging.getLogger(__name__)

ACTION_VERBS = {
    ActivityAction.CREATED.value: 'created',
    ActivityAction.UPDATED.value: 'updated',
    ActivityAction.DELETED.value: 'deleted',
    ActivityAction.SENT.value: 'sent',
    ActivityAction.OPENED.value: 'opened',
    ActivityAction.PAID.value: 'marked as paid',
    ActivityAction.ACCEPTED.value: 'accepted',
    ActivityAction.REJECTED.value: 'rejected',
    ActivityAction.CONVERTED.value: 'converted',
    ActivityAction.ARCHIVED.value: 'archived',
    ActivityAction.RESTORED.value: 'restored',
    ActivityAction.SIGNED.value: 'signed',
    ActivityAction.EXPORTED.value: 'exported',
    ActivityAction.IMPORTED.value: 'imported',
    ActivityAction.ASSIGNED.value: 'assigned',
    ActivityAction.UNASSIGNED.value: 'unassigned',
    ActivityAction.STATUS_CHANGED.value: 'changed status of',
    ActivityAction.MILESTONE_COMPLETED.value: 'completed milestone for',
}

EXPORT_LIMIT = 10000


def _value(member):
    return member.value if hasattr(member, 'value') else member


def build_description(action, entity_type, entity_name: str, additional_info: str = None) -> str:
    """
    Build a consistent description, e.g. 'marked as paid invoice "INV-2026-0004"'.
    """
    action = _value(action)
    verb = ACTION_VERBS.get(action, action)
    description = f'{verb} {_value(entity_type)} "{entity_name}"'
    if additional_info:
        description += f' {additional_info}'
    return description


def log_activity(
    session,
    organization_id: int,
    entity_type,
    entity_id,
    action,
    description: str,
    user_id: int = None,
    metadata: dict = None
) -> ActivityLog:
    """
    Insert an activity row and commit it.

    ``ipAddress`` / ``userAgent`` keys in metadata are moved to their own
    columns; otherwise they are taken from the current request, if any.

    Raises whatever the database raises; use ``record_activity`` from
    business code.
    """
    details = dict(metadata or {})
    ip_address = details.pop('ipAddress', None)
    user_agent = details.pop('userAgent', None)

    if has_request_context():
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get('User-Agent', '')[:255] or None

    entry = ActivityLog(
        organization_id=organization_id,
        user_id=user_id,
        entity_type=_value(entity_type),
        entity_id=str(entity_id),
        action=_value(action),
        description=description,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=utcnow()
    )
    session.add(entry)
    session.commit()

    logger.info(f"Activity logged: {entry.action} {entry.entity_type} {entry.entity_id} by user {user_id}")
    return entry


def record_activity(session, organization_id, entity_type, entity_id, action, description,
                    user_id=None, metadata=None):
    """Best-effort ``log_activity``: failures are logged and never raised."""
    return run_best_effort(
        'activity log',
        log_activity,
        session,
        organization_id,
        entity_type,
        entity_id,
        action,
        description,
        user_id=user_id,
        metadata=metadata,
        session=session,
    )


def list_activity(
    session,
    organization_id: int,
    user_id: int = None,
    entity_type=None,
    entity_id=None,
    action=None,
    start_date=None,
    end_date=None,
    limit: int = 50,
    offset: int = 0
):
    """
    Retrieve activity for an organization with optional filters, newest first.

    Args:
        session: Database session
        organization_id: Organization ID
        user_id: Filter by actor
        entity_type: Filter by entity kind ('estimate', 'invoice', ...)
        entity_id: Filter by entity
        action: Filter by action
        start_date / end_date: Inclusive datetime bounds on created_at
        limit: Max number of results
        offset: Pagination offset

    Returns:
        List of ActivityLog objects
    """
    query = session.query(ActivityLog).filter(
        ActivityLog.organization_id == organization_id
    )

    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == _value(entity_type))
    if entity_id:
        query = query.filter(ActivityLog.entity_id == str(entity_id))
    if action:
        query = query.filter(ActivityLog.action == _value(action))
    if start_date:
        query = query.filter(ActivityLog.created_at >= start_date)
    if end_date:
        query = query.filter(ActivityLog.created_at <= end_date)

    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    return query.limit(limit).offset(offset).all()


def get_recent_activity(session, organization_id: int, limit: int = 10):
    """Latest activity for the dashboard widget."""
    return list_activity(session, organization_id, limit=limit)


def get_entity_activity(session, organization_id: int, entity_type, entity_id):
    """History of a single estimate, invoice, client..."""
    return list_activity(session, organization_id, entity_type=entity_type, entity_id=entity_id)


def export_activity_csv(session, organization_id: int, **filters) -> str:
    """Export matching activity as CSV text (every cell quoted)."""
    filters.pop('limit', None)
    filters.pop('offset', None)
    logs = list_activity(session, organization_id, limit=EXPORT_LIMIT, offset=0, **filters)

    user_ids = {log.user_id for log in logs if log.user_id}
    emails = {}
    if user_ids:
        emails = dict(session.query(AppUser.id, AppUser.email).filter(AppUser.id.in_(user_ids)).all())

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(['Date/Time', 'User', 'Action', 'Entity Type', 'Description', 'IP Address'])
    for log in logs:
        writer.writerow([
            format_datetime(log.created_at),
            emails.get(log.user_id, 'Unknown'),
            log.action,
            log.entity_type,
            log.description,
            log.ip_address or '',
        ])
    return buffer.getvalue()


__all__ = [
    'ActivityAction', 'EntityType', 'build_description', 'log_activity', 'record_activity',
    'list_activity', 'get_recent_activity', 'get_entity_activity', 'export_activity_csv',
]
