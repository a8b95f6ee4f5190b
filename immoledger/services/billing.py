# immoledger/services/billing.py
"""
Rental billing: monthly due-date generation and payment reconciliation.

A due date's total is a snapshot taken when it is generated. Its status is
derived from the full payment history every time it is recomputed, so
retried or out-of-order payment calls converge on the same answer.
"""
from contextlib import nullcontext
from datetime import datetime, time
import logging

from ..config import BillingConfig
from ..errors import ConflictError, ValidationError
from .locks import due_date_locks
from .occupancy import ensure_owner
from .periods import (add_months, clamp_due_date, iter_periods, parse_date,
                      period_key, to_amount, validate_period)

_logger = logging.getLogger(__name__)

DUE_STATUSES = ('pending', 'paid', 'overdue', 'cancelled')


def derive_due_status(current, total_amount, total_paid, due_on, now):
    """
    Status a due date should carry given what has been paid against it.
    An unpaid due date is overdue from the start of its due day.
    """
    if current == 'cancelled':
        return current
    if total_paid >= total_amount:
        return 'paid'
    if current == 'paid':
        # Payments are immutable, so a settled obligation stays settled
        return current
    if datetime.combine(due_on, time.min) < now:
        return 'overdue'
    return 'pending'


class RentalBillingEngine:
    def __init__(self, store, clock=None):
        self.store = store
        self.clock = clock or datetime.now

    def _today(self):
        return self.clock().date()

    # --- Due dates ---

    def _insert_due_date(self, tenant, month, year, rent_amount, charges_amount, due_on=None):
        return self.store.insert('due_dates', {
            'tenant_id': tenant.id,
            'property_id': tenant.property_id,
            'period_month': month,
            'period_year': year,
            'rent_amount': rent_amount,
            'charges_amount': charges_amount,
            'total_amount': rent_amount + charges_amount,
            'due_date': due_on or clamp_due_date(year, month, tenant.due_day),
            'status': 'pending',
        })

    def generate_due_dates(self, tenant_id, start_month, start_year, end_month=None, end_year=None,
                           actor_id=None):
        """
        Create one pending due date per period from start to end inclusive.
        Periods that already have a due date for the tenant are skipped, so
        calling this twice with the same range creates nothing the second time.
        Returns only the newly created due dates.
        """
        start = validate_period(start_month, start_year)
        if end_month is None and end_year is None:
            end = add_months(*start, BillingConfig.DEFAULT_GENERATION_MONTHS - 1)
        elif end_month is None or end_year is None:
            raise ValidationError('end_month and end_year must be given together')
        else:
            end = validate_period(end_month, end_year)
        if (end[1], end[0]) < (start[1], start[0]):
            raise ValidationError('End period must not be before start period')

        tenant = self.store.require('tenants', tenant_id)
        prop = self.store.require('managed_properties', tenant.property_id)
        if actor_id is not None:
            ensure_owner(prop, actor_id, 'bill this tenant')
        existing = {
            (d.period_month, d.period_year)
            for d in self.store.query('due_dates', {'tenant_id': tenant.id})
        }

        created = []
        with self.store.atomic():
            for month, year in iter_periods(start, end, BillingConfig.MAX_GENERATED_PERIODS):
                if (month, year) in existing:
                    _logger.debug('tenant %s already billed for %s', tenant.id, period_key(year, month))
                    continue
                created.append(self._insert_due_date(tenant, month, year, tenant.monthly_rent, prop.charges))
        _logger.info('generated %d due dates for tenant %s', len(created), tenant.id)
        return created

    def create_due_date(self, tenant_id, period_month, period_year, rent_amount, charges_amount=0, due_date=None):
        month, year = validate_period(period_month, period_year)
        rent = to_amount(rent_amount, 'rent_amount', allow_zero=False)
        charges = to_amount(charges_amount or 0, 'charges_amount')
        due_on = parse_date(due_date, 'due_date') if due_date else None
        tenant = self.store.require('tenants', tenant_id)
        if self.store.query('due_dates', {'tenant_id': tenant.id, 'period_month': month, 'period_year': year}):
            raise ConflictError(f'Tenant {tenant.id} already has a due date for {period_key(year, month)}')
        with self.store.atomic():
            due = self._insert_due_date(tenant, month, year, rent, charges, due_on)
        return due

    def _settle(self, due):
        """Recompute ``due``'s status from every payment recorded against it."""
        total_paid = sum(p.amount for p in self.store.query('payments', {'due_date_id': due.id}))
        status = derive_due_status(due.status, due.total_amount, total_paid, due.due_date, self.clock())
        if status != due.status:
            _logger.info('due date %s: %s -> %s (paid %d of %d)',
                         due.id, due.status, status, total_paid, due.total_amount)
            due = self.store.update_by_id('due_dates', due.id, {'status': status})
        return due

    def recheck_due_date(self, due_date_id):
        with due_date_locks.hold(due_date_id), self.store.atomic():
            return self._settle(self.store.reload('due_dates', due_date_id))

    def sweep_overdue(self, tenant_id=None, property_id=None, actor_id=None):
        """
        Caller-invoked pass that re-derives the status of every pending due
        date whose date has passed. Nothing schedules this automatically.
        """
        scope = self._scope(tenant_id, property_id, actor_id)
        stale = self.store.query('due_dates', dict(scope, status='pending', due_date__lte=self._today()))
        changed = []
        for due in stale:
            with due_date_locks.hold(due.id), self.store.atomic():
                due = self.store.reload('due_dates', due.id)
                before = due.status
                due = self._settle(due)
                if due.status != before:
                    changed.append(due)
        _logger.info('overdue sweep updated %d of %d due dates', len(changed), len(stale))
        return changed

    def cancel_due_date(self, due_date_id, actor_id=None):
        due = self.store.require('due_dates', due_date_id)
        if actor_id is not None:
            ensure_owner(self.store.require('managed_properties', due.property_id), actor_id,
                         'cancel this due date')
        if due.status == 'paid':
            raise ValidationError('A paid due date cannot be cancelled')
        if due.status == 'cancelled':
            return due
        with due_date_locks.hold(due.id), self.store.atomic():
            due = self.store.update_by_id('due_dates', due.id, {'status': 'cancelled'})
        _logger.info('due date %s cancelled', due.id)
        return due

    # --- Payments ---

    def create_payment(self, tenant_id, due_date_id, amount, method, payment_date=None,
                       actor_id=None, transaction_reference=None, notes=None):
        """
        Record a payment, then re-derive the linked due date's status from
        its full payment history. Everything is validated before the insert.
        """
        amount = to_amount(amount, 'amount', allow_zero=False)
        if method not in BillingConfig.PAYMENT_METHODS:
            raise ValidationError(f'method must be one of {", ".join(BillingConfig.PAYMENT_METHODS)}')
        paid_on = parse_date(payment_date, 'payment_date') if payment_date else self._today()
        tenant = self.store.require('tenants', tenant_id)
        if actor_id is not None:
            ensure_owner(self.store.require('managed_properties', tenant.property_id), actor_id,
                         'record a payment for this tenant')
        due = None
        if due_date_id is not None:
            due = self.store.require('due_dates', due_date_id)
            if due.tenant_id != tenant.id:
                raise ValidationError(f'Due date {due.id} does not belong to tenant {tenant.id}')

        guard = due_date_locks.hold(due.id) if due is not None else nullcontext()
        with guard, self.store.atomic():
            payment = self.store.insert('payments', {
                'tenant_id': tenant.id,
                'property_id': tenant.property_id,
                'due_date_id': due.id if due is not None else None,
                'period_month': due.period_month if due is not None else None,
                'period_year': due.period_year if due is not None else None,
                'amount': amount,
                'method': method,
                'payment_date': paid_on,
                'transaction_reference': transaction_reference,
                'notes': notes,
                'recorded_by': actor_id,
            })
            if due is not None:
                # Re-read so a concurrent writer's status is not overwritten with a stale one
                self._settle(self.store.reload('due_dates', due.id))
        _logger.info('payment %s of %d recorded for tenant %s', payment.id, amount, tenant.id)
        return payment

    # --- Reads ---

    def _scope(self, tenant_id=None, property_id=None, actor_id=None):
        """Filter for the records a read may see. An actor only sees their own properties."""
        if tenant_id is not None:
            if actor_id is not None:
                tenant = self.store.require('tenants', tenant_id)
                ensure_owner(self.store.require('managed_properties', tenant.property_id), actor_id,
                             'view this tenant')
            return {'tenant_id': tenant_id}
        if property_id is not None:
            if actor_id is not None:
                ensure_owner(self.store.require('managed_properties', property_id), actor_id,
                             'view this property')
            return {'property_id': property_id}
        if actor_id is None:
            raise ValidationError('A tenant, property or actor scope is required')
        owned = self.store.query('managed_properties', {'owner_id': actor_id})
        return {'property_id': [p.id for p in owned]}

    def list_due_dates(self, tenant_id=None, property_id=None, actor_id=None):
        return self.store.query('due_dates', self._scope(tenant_id, property_id, actor_id),
                                order=['-period_year', '-period_month'])

    def list_payments(self, tenant_id=None, property_id=None, actor_id=None, due_date_id=None):
        if due_date_id is not None:
            due = self.store.require('due_dates', due_date_id)
            if actor_id is not None:
                ensure_owner(self.store.require('managed_properties', due.property_id), actor_id,
                             'view these payments')
            scope = {'due_date_id': due.id}
        else:
            scope = self._scope(tenant_id, property_id, actor_id)
        return self.store.query('payments', scope, order=['-payment_date', '-id'])

    def compute_stats(self, tenant_id=None, property_id=None, actor_id=None):
        """
        Totals for a tenant, a property, or everything ``actor_id`` owns.
        total_due is the running sum of every non-cancelled obligation, not
        the outstanding balance.
        """
        scope = self._scope(tenant_id, property_id, actor_id)
        stats = {
            'total_due': 0,
            'total_paid': 0,
            'pending_count': 0,
            'overdue_count': 0,
            'paid_count': 0,
        }
        for due in self.store.query('due_dates', scope):
            if due.status == 'cancelled':
                continue
            stats['total_due'] += due.total_amount
            stats[f'{due.status}_count'] += 1
        stats['total_paid'] = sum(p.amount for p in self.store.query('payments', scope))
        return stats
