# immoledger/store.py
"""
Persistence port used by the billing, occupancy and reservation engines.

Engines never touch the SQLAlchemy session directly: they receive a store
and address records by collection name. ``SqlAlchemyStore`` is the only
adapter, backed by the Flask-SQLAlchemy session.
"""
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from .errors import ConflictError, NotFound
from .models import ManagedProperty, Tenant, DueDate, Payment, Booking

COLLECTIONS = {
    'managed_properties': ManagedProperty,
    'tenants': Tenant,
    'due_dates': DueDate,
    'payments': Payment,
    'bookings': Booking,
}

# Human readable names used in NotFound messages
_LABELS = {
    'managed_properties': 'Property',
    'tenants': 'Tenant',
    'due_dates': 'Due date',
    'payments': 'Payment',
    'bookings': 'Booking',
}

_OPERATORS = {
    'lt': lambda col, v: col < v,
    'lte': lambda col, v: col <= v,
    'gt': lambda col, v: col > v,
    'gte': lambda col, v: col >= v,
    'ne': lambda col, v: col != v,
    'in': lambda col, v: col.in_(list(v)),
}


class SqlAlchemyStore:
    def __init__(self, session):
        self.session = session
        self._depth = 0

    def _model(self, collection):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f'Unknown collection {collection!r}')

    def _column(self, model, field):
        if field not in model.__table__.columns:
            raise ValueError(f'{model.__tablename__} has no field {field!r}')
        return getattr(model, field)

    @contextmanager
    def atomic(self):
        """Commit once the outermost block succeeds, roll back on any error."""
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self.session.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self.session.commit()

    def insert(self, collection, record):
        model = self._model(collection)
        for field in record:
            self._column(model, field)
        obj = model(**record)
        self.session.add(obj)
        try:
            self.session.flush()
        except IntegrityError as e:
            # A unique key written concurrently by another caller
            raise ConflictError(f'{_LABELS[collection]} already exists') from e
        return obj

    def get_by_id(self, collection, id):
        return self.session.get(self._model(collection), id)

    def require(self, collection, id):
        obj = self.get_by_id(collection, id)
        if obj is None:
            raise NotFound(f'{_LABELS[collection]} {id} not found')
        return obj

    def reload(self, collection, id):
        """Like ``require`` but bypasses the session cache and reads the stored row."""
        obj = self.session.get(self._model(collection), id, populate_existing=True)
        if obj is None:
            raise NotFound(f'{_LABELS[collection]} {id} not found')
        return obj

    def update_by_id(self, collection, id, partial):
        model = self._model(collection)
        obj = self.require(collection, id)
        for field, value in partial.items():
            self._column(model, field)
            setattr(obj, field, value)
        self.session.flush()
        return obj

    def query(self, collection, filter=None, order=None):
        """
        Return records matching every ``{field: value}`` pair of ``filter``.
        A list/tuple/set value means IN; ``field__lt`` style keys apply the
        named comparison. ``order`` lists field names, ``-field`` descending.
        """
        model = self._model(collection)
        q = self.session.query(model)
        for key, value in (filter or {}).items():
            field, _, op = key.partition('__')
            col = self._column(model, field)
            if op:
                if op not in _OPERATORS:
                    raise ValueError(f'Unknown filter operator {op!r}')
                q = q.filter(_OPERATORS[op](col, value))
            elif isinstance(value, (list, tuple, set, frozenset)):
                q = q.filter(col.in_(list(value)))
            elif value is None:
                q = q.filter(col.is_(None))
            else:
                q = q.filter(col == value)
        for field in order or []:
            if field.startswith('-'):
                q = q.order_by(self._column(model, field[1:]).desc())
            else:
                q = q.order_by(self._column(model, field))
        return q.all()
