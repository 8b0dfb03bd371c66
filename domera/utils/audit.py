import json
from datetime import date, datetime

from flask import g, has_request_context, request, session as flask_session
from sqlalchemy import event, inspect as sa_inspect

from domera.extensions import db
from domera.models import RevisionLog

# Passwort-Hashes gehören nicht ins Revisionsprotokoll
_SKIPPED_COLUMNS = ('updated_at', 'password_hash')

_listeners_registered = False


def _current_user_context():
    if not has_request_context():
        return None, None, None
    user_id = g.get('current_user_id') or flask_session.get('user_id')
    return (
        user_id,
        request.remote_addr,
        request.headers.get('User-Agent'),
    )


def _serialize_value(value):
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _build_snapshot(obj):
    data = {}
    for column in obj.__mapper__.columns:
        if column.key in _SKIPPED_COLUMNS:
            continue
        data[column.key] = _serialize_value(getattr(obj, column.key, None))
    return data


def _table_name(obj):
    return getattr(obj, '__tablename__', obj.__class__.__name__)


def _dump(payload):
    return json.dumps(payload, ensure_ascii=False, default=str)


def register_audit_listeners():
    """Registriert Revisions-Logs für Einfügen/Ändern/Löschen (einmal pro Prozess)."""
    global _listeners_registered
    if _listeners_registered:
        return
    _listeners_registered = True

    @event.listens_for(db.session, 'after_flush')
    def receive_after_flush(session, flush_context):
        user_id, ip_address, user_agent = _current_user_context()

        def add_log(obj, action, changes):
            session.add(RevisionLog(
                table_name=_table_name(obj),
                record_id=str(getattr(obj, 'id', None)),
                action=action,
                user_id=user_id,
                changes=_dump(changes),
                ip_address=ip_address,
                user_agent=user_agent,
            ))

        for obj in session.new:
            if isinstance(obj, RevisionLog):
                continue
            add_log(obj, 'insert', {'data': _build_snapshot(obj)})

        for obj in session.dirty:
            if isinstance(obj, RevisionLog):
                continue
            state = sa_inspect(obj)
            changes = {}
            for attr in state.attrs:
                if attr.key in _SKIPPED_COLUMNS:
                    continue
                hist = attr.history
                if hist.has_changes():
                    old_val = hist.deleted[0] if hist.deleted else None
                    new_val = hist.added[0] if hist.added else getattr(obj, attr.key)
                    changes[attr.key] = {
                        'old': _serialize_value(old_val),
                        'new': _serialize_value(new_val),
                    }
            if changes:
                add_log(obj, 'update', changes)

        for obj in session.deleted:
            if isinstance(obj, RevisionLog):
                continue
            add_log(obj, 'delete', {'before': _build_snapshot(obj)})
