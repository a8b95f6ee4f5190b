# immoledger/context.py
"""Per-request wiring between the HTTP layer and the engines."""
from flask import current_app, request

from . import db
from .errors import PermissionDenied
from .store import SqlAlchemyStore


def current_actor(required=True):
    """Actor id forwarded by the auth gateway in the configured header."""
    actor = request.headers.get(current_app.config['ACTOR_HEADER'])
    if required and not actor:
        raise PermissionDenied('You must be signed in')
    return actor


def ledger_store():
    return SqlAlchemyStore(db.session)


def json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
