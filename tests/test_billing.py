# tests/test_billing.py
import pytest
from datetime import date, datetime
from immoledger.errors import ConflictError, NotFound, PermissionDenied, ValidationError
from immoledger.models import DueDate, Payment
from immoledger.services.billing import RentalBillingEngine, derive_due_status
from immoledger.services.locks import due_date_locks

OWNER = 'owner-1'   # owns the property built by the rented fixture

# Fixed clock: 2025-01-15, so December 2024 dates are past and February 2025 is future.


# --- Due date generation ---

def test_generate_due_dates_scenario(billing, rented):
    """Rent 100000 + charges 10000, due on the 31st, billed Dec 2024 to Feb 2025."""
    prop, tenant = rented
    created = billing.generate_due_dates(tenant.id, 12, 2024, 2, 2025)
    assert [(d.period_month, d.period_year) for d in created] == [(12, 2024), (1, 2025), (2, 2025)]
    assert all(d.total_amount == 110000 for d in created)
    assert all(d.status == 'pending' for d in created)
    assert created[0].due_date == date(2024, 12, 31)
    assert created[1].due_date == date(2025, 1, 31)
    assert created[2].due_date == date(2025, 2, 28)   # clamped


def test_generate_due_dates_is_idempotent(billing, rented, db_session):
    _, tenant = rented
    first = billing.generate_due_dates(tenant.id, 1, 2025, 6, 2025)
    second = billing.generate_due_dates(tenant.id, 1, 2025, 6, 2025)
    assert len(first) == 6
    assert second == []
    assert db_session.query(DueDate).filter_by(tenant_id=tenant.id).count() == 6

    # Overlapping range only fills the gap
    third = billing.generate_due_dates(tenant.id, 5, 2025, 8, 2025)
    assert [(d.period_month, d.period_year) for d in third] == [(7, 2025), (8, 2025)]


def test_generate_due_dates_defaults_to_twelve_months(billing, rented):
    _, tenant = rented
    assert len(billing.generate_due_dates(tenant.id, 3, 2025)) == 12


def test_generate_due_dates_capped(billing, rented):
    _, tenant = rented
    created = billing.generate_due_dates(tenant.id, 1, 2025, 12, 2030)
    assert len(created) == 24
    assert (created[-1].period_month, created[-1].period_year) == (12, 2026)


def test_generate_due_dates_rejects_bad_ranges(billing, rented):
    _, tenant = rented
    with pytest.raises(ValidationError):
        billing.generate_due_dates(tenant.id, 6, 2025, 1, 2025)
    with pytest.raises(ValidationError):
        billing.generate_due_dates(tenant.id, 6, 2025, 7, None)
    with pytest.raises(NotFound):
        billing.generate_due_dates(9999, 1, 2025, 2, 2025)


def test_due_date_total_is_frozen(billing, occupancy, rented, store):
    prop, tenant = rented
    [due] = billing.generate_due_dates(tenant.id, 3, 2025, 3, 2025)
    store.update_by_id('tenants', tenant.id, {'monthly_rent': 150000})
    occupancy.update_managed_property(OWNER, prop.id, {'charges': 20000})
    assert store.get_by_id('due_dates', due.id).total_amount == 110000
    # New periods pick up the new terms
    [april] = billing.generate_due_dates(tenant.id, 4, 2025, 4, 2025)
    assert april.total_amount == 170000


def test_create_due_date_rejects_duplicate_period(billing, rented):
    _, tenant = rented
    due = billing.create_due_date(tenant.id, 5, 2025, 100000, 5000)
    assert due.total_amount == 105000
    assert due.due_date == date(2025, 5, 31)
    with pytest.raises(ConflictError):
        billing.create_due_date(tenant.id, 5, 2025, 100000)


# --- Payments and status reconciliation ---

def test_full_payment_marks_paid_and_later_payment_keeps_it(billing, rented):
    _, tenant = rented
    due = billing.create_due_date(tenant.id, 2, 2025, 150000, 10000)
    assert due.total_amount == 160000

    billing.create_payment(tenant.id, due.id, 160000, 'cash')
    assert billing.store.get_by_id('due_dates', due.id).status == 'paid'

    billing.create_payment(tenant.id, due.id, 1, 'cash')
    assert billing.store.get_by_id('due_dates', due.id).status == 'paid'


def test_partial_payments_accumulate(billing, rented):
    _, tenant = rented
    [feb] = billing.generate_due_dates(tenant.id, 2, 2025, 2, 2025)
    billing.create_payment(tenant.id, feb.id, 50000, 'mobile_money')
    assert billing.store.get_by_id('due_dates', feb.id).status == 'pending'
    billing.create_payment(tenant.id, feb.id, 60000, 'bank_transfer')
    assert billing.store.get_by_id('due_dates', feb.id).status == 'paid'


def test_partial_payment_on_past_due_date_marks_overdue(billing, rented):
    _, tenant = rented
    [dec] = billing.generate_due_dates(tenant.id, 12, 2024, 12, 2024)
    billing.create_payment(tenant.id, dec.id, 10000, 'cash')
    assert billing.store.get_by_id('due_dates', dec.id).status == 'overdue'
    billing.create_payment(tenant.id, dec.id, 100000, 'cash')
    assert billing.store.get_by_id('due_dates', dec.id).status == 'paid'


def test_payment_validation_happens_before_any_write(billing, rented, db_session):
    _, tenant = rented
    [due] = billing.generate_due_dates(tenant.id, 2, 2025, 2, 2025)
    with pytest.raises(ValidationError):
        billing.create_payment(tenant.id, due.id, 0, 'cash')
    with pytest.raises(ValidationError):
        billing.create_payment(tenant.id, due.id, -5, 'cash')
    with pytest.raises(ValidationError):
        billing.create_payment(tenant.id, due.id, 100, 'bitcoin')
    with pytest.raises(NotFound):
        billing.create_payment(tenant.id, 9999, 100, 'cash')
    with pytest.raises(PermissionDenied):
        billing.create_payment(tenant.id, due.id, 100, 'cash', actor_id='someone-else')
    assert db_session.query(Payment).count() == 0


def test_free_payment_without_due_date(billing, rented):
    prop, tenant = rented
    payment = billing.create_payment(tenant.id, None, 25000, 'cash', payment_date='2025-01-10',
                                     actor_id=OWNER)
    assert payment.due_date_id is None
    assert payment.property_id == prop.id
    assert payment.recorded_by == OWNER
    assert payment.payment_date == date(2025, 1, 10)


def test_payment_against_another_tenants_due_date_rejected(billing, occupancy, rented):
    _, tenant = rented
    other_prop = occupancy.create_managed_property(OWNER, {'name': 'Studio', 'monthly_rent': 50000})
    other = occupancy.on_tenant_created(OWNER, {'property_id': other_prop.id, 'full_name': 'Kofi', 'due_day': 5})
    [due] = billing.generate_due_dates(other.id, 2, 2025, 2, 2025)
    with pytest.raises(ValidationError):
        billing.create_payment(tenant.id, due.id, 1000, 'cash')


def test_due_date_locks_released_after_payments(billing, rented):
    _, tenant = rented
    before = len(due_date_locks)
    for due in billing.generate_due_dates(tenant.id, 1, 2025, 12, 2025):
        billing.create_payment(tenant.id, due.id, 110000, 'cash')
    billing.sweep_overdue(tenant_id=tenant.id)
    assert len(due_date_locks) == before


def test_recheck_recomputes_from_full_history(billing, rented, store):
    _, tenant = rented
    [due] = billing.generate_due_dates(tenant.id, 2, 2025, 2, 2025)
    # A payment written without going through the engine, as a retried import would
    store.insert('payments', {
        'tenant_id': tenant.id, 'property_id': tenant.property_id, 'due_date_id': due.id,
        'amount': 110000, 'method': 'cash', 'payment_date': date(2025, 1, 20),
    })
    assert billing.recheck_due_date(due.id).status == 'paid'


def test_sweep_overdue_is_explicit(billing, rented, store):
    _, tenant = rented
    billing.generate_due_dates(tenant.id, 11, 2024, 2, 2025)
    # Nothing flips on its own
    assert {d.status for d in store.query('due_dates', {})} == {'pending'}
    changed = billing.sweep_overdue(tenant_id=tenant.id)
    assert sorted((d.period_month, d.period_year) for d in changed) == [(11, 2024), (12, 2024)]
    statuses = {(d.period_month, d.status) for d in store.query('due_dates', {})}
    assert (1, 'pending') in statuses and (2, 'pending') in statuses


def test_sweep_later_clock_marks_january(store, rented):
    _, tenant = rented
    engine = RentalBillingEngine(store, clock=lambda: datetime(2025, 2, 3))
    engine.generate_due_dates(tenant.id, 1, 2025, 2, 2025)
    changed = engine.sweep_overdue(actor_id=OWNER)
    assert [(d.period_month, d.status) for d in changed] == [(1, 'overdue')]


def test_cancel_due_date(billing, rented):
    _, tenant = rented
    [jan, feb] = billing.generate_due_dates(tenant.id, 1, 2025, 2, 2025)
    assert billing.cancel_due_date(jan.id, actor_id=OWNER).status == 'cancelled'
    billing.create_payment(tenant.id, feb.id, 110000, 'cash')
    with pytest.raises(ValidationError):
        billing.cancel_due_date(feb.id)
    with pytest.raises(PermissionDenied):
        billing.cancel_due_date(jan.id, actor_id='intruder')


@pytest.mark.parametrize("current, total, paid, due_on, expected", [
    ('pending', 100, 100, date(2025, 2, 1), 'paid'),
    ('pending', 100, 99, date(2025, 2, 1), 'pending'),
    ('pending', 100, 99, date(2025, 1, 14), 'overdue'),
    ('pending', 100, 0, date(2025, 1, 15), 'overdue'),   # late from the start of the due day
    ('pending', 100, 0, date(2025, 1, 16), 'pending'),
    ('overdue', 100, 150, date(2024, 12, 1), 'paid'),
    ('paid', 100, 100, date(2024, 12, 1), 'paid'),
    ('cancelled', 100, 100, date(2025, 2, 1), 'cancelled'),
])
def test_derive_due_status(current, total, paid, due_on, expected):
    assert derive_due_status(current, total, paid, due_on, datetime(2025, 1, 15, 10, 30)) == expected


def test_partial_payment_on_the_due_day_marks_overdue(store, rented):
    _, tenant = rented
    engine = RentalBillingEngine(store, clock=lambda: datetime(2025, 1, 31, 10, 0))
    [jan] = engine.generate_due_dates(tenant.id, 1, 2025, 1, 2025)
    assert jan.due_date == date(2025, 1, 31)
    engine.create_payment(tenant.id, jan.id, 1000, 'cash')
    assert store.get_by_id('due_dates', jan.id).status == 'overdue'


def test_sweep_includes_due_dates_falling_due_today(store, rented):
    _, tenant = rented
    engine = RentalBillingEngine(store, clock=lambda: datetime(2025, 1, 31, 9, 0))
    engine.generate_due_dates(tenant.id, 1, 2025, 2, 2025)
    changed = engine.sweep_overdue(tenant_id=tenant.id)
    assert [(d.period_month, d.status) for d in changed] == [(1, 'overdue')]


# --- Stats ---

def test_compute_stats_by_scope(billing, occupancy, rented):
    prop, tenant = rented
    dec, jan, feb = billing.generate_due_dates(tenant.id, 12, 2024, 2, 2025)
    billing.create_payment(tenant.id, dec.id, 110000, 'cash')
    billing.create_payment(tenant.id, jan.id, 10000, 'cash')
    billing.create_payment(tenant.id, None, 5000, 'cash')

    other_prop = occupancy.create_managed_property('owner-2', {'name': 'Elsewhere', 'monthly_rent': 1000})
    other = occupancy.on_tenant_created('owner-2', {'property_id': other_prop.id, 'full_name': 'X', 'due_day': 1})
    billing.generate_due_dates(other.id, 1, 2025, 1, 2025)

    stats = billing.compute_stats(tenant_id=tenant.id)
    assert stats == {
        'total_due': 330000,
        'total_paid': 125000,
        'pending_count': 2,
        'overdue_count': 0,
        'paid_count': 1,
    }
    assert billing.compute_stats(property_id=prop.id) == stats
    assert billing.compute_stats(actor_id=OWNER) == stats

    billing.cancel_due_date(feb.id)
    assert billing.compute_stats(actor_id=OWNER)['total_due'] == 220000


def test_compute_stats_requires_a_scope(billing):
    with pytest.raises(ValidationError):
        billing.compute_stats()


def test_list_due_dates_newest_period_first(billing, rented):
    _, tenant = rented
    billing.generate_due_dates(tenant.id, 11, 2024, 2, 2025)
    listed = billing.list_due_dates(tenant_id=tenant.id)
    assert [(d.period_year, d.period_month) for d in listed] == [(2025, 2), (2025, 1), (2024, 12), (2024, 11)]
