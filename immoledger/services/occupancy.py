# immoledger/services/occupancy.py
"""Keeps each managed property's status in step with its tenants."""
import logging
from datetime import datetime

from ..errors import ConflictError, PermissionDenied, ValidationError
from .locks import property_locks
from .periods import parse_date, to_amount

_logger = logging.getLogger(__name__)


def ensure_owner(prop, actor_id, action='modify this property'):
    if actor_id is None or str(prop.owner_id) != str(actor_id):
        raise PermissionDenied(f'You are not allowed to {action}')


def _clean_property_fields(data, partial=False):
    clean = {}
    if not partial or 'name' in data:
        name = str(data.get('name') or '').strip()
        if not name:
            raise ValidationError('Property name is required')
        clean['name'] = name
    if 'address' in data:
        clean['address'] = data['address']
    if not partial or 'monthly_rent' in data:
        clean['monthly_rent'] = to_amount(data.get('monthly_rent'), 'monthly_rent', allow_zero=False)
    for field in ('charges', 'deposit'):
        if field in data:
            clean[field] = to_amount(data[field] or 0, field)
        elif not partial:
            clean[field] = 0
    return clean


def _clean_due_day(value):
    if isinstance(value, bool):
        raise ValidationError('due_day must be an integer')
    try:
        due_day = int(value)
    except (TypeError, ValueError):
        raise ValidationError('due_day must be an integer')
    if due_day != value and str(due_day) != str(value).strip():
        raise ValidationError('due_day must be an integer')
    return due_day


def _clean_tenant_fields(data, prop):
    full_name = str(data.get('full_name') or '').strip()
    if not full_name:
        raise ValidationError('full_name is required')
    due_day = _clean_due_day(data.get('due_day'))
    if not 1 <= due_day <= 31:
        raise ValidationError('due_day must be between 1 and 31')
    rent = data.get('monthly_rent')
    clean = {
        'property_id': prop.id,
        'full_name': full_name,
        'email': data.get('email'),
        'phone': data.get('phone'),
        'monthly_rent': prop.monthly_rent if rent is None else to_amount(rent, 'monthly_rent', allow_zero=False),
        'due_day': due_day,
        'status': 'active',
    }
    for field in ('lease_start_date', 'lease_end_date'):
        if data.get(field):
            clean[field] = parse_date(data[field], field)
    if clean.get('lease_start_date') and clean.get('lease_end_date') \
            and clean['lease_end_date'] <= clean['lease_start_date']:
        raise ValidationError('lease_end_date must be after lease_start_date')
    return clean


class OccupancyCoordinator:
    def __init__(self, store, clock=None):
        self.store = store
        self.clock = clock or datetime.now

    def _owned(self, actor_id, property_id, action='modify this property'):
        prop = self.store.require('managed_properties', property_id)
        ensure_owner(prop, actor_id, action)
        return prop

    # --- Managed properties ---

    def create_managed_property(self, actor_id, data):
        if actor_id is None:
            raise PermissionDenied('You must be signed in to add a property')
        record = _clean_property_fields(data)
        record.update(owner_id=str(actor_id), status='vacant')
        with self.store.atomic():
            prop = self.store.insert('managed_properties', record)
        _logger.info('property %s created for owner %s', prop.id, actor_id)
        return prop

    def update_managed_property(self, actor_id, property_id, patch):
        if 'status' in patch:
            raise ValidationError('status is managed by tenant lifecycle; use archive to retire a property')
        prop = self._owned(actor_id, property_id)
        changes = _clean_property_fields(patch, partial=True)
        with self.store.atomic():
            return self.store.update_by_id('managed_properties', prop.id, changes)

    def archive_managed_property(self, actor_id, property_id):
        prop = self._owned(actor_id, property_id, 'archive this property')
        with property_locks.hold(prop.id), self.store.atomic():
            prop = self.store.update_by_id('managed_properties', prop.id, {'status': 'archived'})
        _logger.info('property %s archived', prop.id)
        return prop

    def list_managed_properties(self, actor_id, include_archived=False):
        filter = {'owner_id': str(actor_id)}
        if not include_archived:
            filter['status__ne'] = 'archived'
        return self.store.query('managed_properties', filter, order=['-created_at', '-id'])

    def property_stats(self, actor_id):
        props = self.list_managed_properties(actor_id)
        return {
            'total': len(props),
            'occupied': sum(1 for p in props if p.status == 'occupied'),
            'vacant': sum(1 for p in props if p.status == 'vacant'),
        }

    # --- Tenant lifecycle ---

    def active_tenant_for_property(self, property_id):
        active = self.store.query('tenants', {'property_id': property_id, 'status': 'active'}, order=['id'])
        return active[0] if active else None

    def _guard_activation(self, prop, exclude_tenant_id=None):
        if prop.status == 'archived':
            raise ValidationError(f'Property {prop.id} is archived')
        active = self.active_tenant_for_property(prop.id)
        if active is not None and active.id != exclude_tenant_id:
            raise ConflictError(f'Property {prop.id} already has an active tenant')

    def on_tenant_created(self, actor_id, data):
        """Insert an active tenant and mark its property occupied."""
        if data.get('property_id') is None:
            raise ValidationError('property_id is required')
        prop = self._owned(actor_id, data.get('property_id'), 'add a tenant to this property')
        record = _clean_tenant_fields(data, prop)
        with property_locks.hold(prop.id):
            self._guard_activation(prop)
            with self.store.atomic():
                tenant = self.store.insert('tenants', record)
                self.store.update_by_id('managed_properties', prop.id, {'status': 'occupied'})
        _logger.info('tenant %s moved into property %s', tenant.id, prop.id)
        return tenant

    def on_tenant_activated(self, actor_id, tenant_id):
        tenant = self.store.require('tenants', tenant_id)
        prop = self._owned(actor_id, tenant.property_id, 'modify this tenant')
        if tenant.status == 'active':
            return tenant
        with property_locks.hold(prop.id):
            self._guard_activation(prop, exclude_tenant_id=tenant.id)
            with self.store.atomic():
                tenant = self.store.update_by_id('tenants', tenant.id, {'status': 'active', 'terminated_at': None})
                self.store.update_by_id('managed_properties', prop.id, {'status': 'occupied'})
        _logger.info('tenant %s reactivated on property %s', tenant.id, prop.id)
        return tenant

    def on_tenant_terminated(self, actor_id, tenant_id):
        """
        Terminate the tenant, then look for any tenant still active on the
        property. The lookup runs after the termination is written so the
        departing tenant is not counted.
        """
        tenant = self.store.require('tenants', tenant_id)
        prop = self._owned(actor_id, tenant.property_id, 'modify this tenant')
        with property_locks.hold(prop.id):
            with self.store.atomic():
                if tenant.status != 'terminated':
                    tenant = self.store.update_by_id('tenants', tenant.id, {
                        'status': 'terminated',
                        'terminated_at': self.clock(),
                    })
            with self.store.atomic():
                prop = self.store.reload('managed_properties', prop.id)
                if self.active_tenant_for_property(prop.id) is None and prop.status == 'occupied':
                    self.store.update_by_id('managed_properties', prop.id, {'status': 'vacant'})
                    _logger.info('property %s is now vacant', prop.id)
        _logger.info('tenant %s terminated', tenant.id)
        return tenant
