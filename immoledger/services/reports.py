# immoledger/services/reports.py
from collections import defaultdict
from datetime import date, timedelta

from ..errors import ValidationError
from .periods import add_months, parse_date
from .reservations import STATUSES

REVENUE_PAYMENT_STATUSES = ('paid', 'partial')
REVENUE_PERIODS = ('day', 'week', 'month')


def _bookings(store, establishment_id):
    filter = {}
    if establishment_id is not None:
        filter['establishment_id'] = str(establishment_id)
    return store.query('bookings', filter)


def booking_stats(store, establishment_id=None, today=None):
    """
    Dashboard counts for bookings, optionally for one establishment.
    Arrivals are confirmed bookings checking in today, departures are
    checked-in bookings checking out today.
    """
    today = today or date.today()
    bookings = _bookings(store, establishment_id)
    stats = {'total': len(bookings)}
    for status in STATUSES:
        stats[status] = sum(1 for b in bookings if b.status == status)
    stats['arriving_today'] = sum(
        1 for b in bookings if b.check_in_date.date() == today and b.status == 'confirmed')
    stats['departing_today'] = sum(
        1 for b in bookings if b.check_out_date.date() == today and b.status == 'checked_in')
    stats['revenue'] = sum(
        b.total_amount for b in bookings if b.payment_status in REVENUE_PAYMENT_STATUSES)
    return stats


def _bucket(day, period):
    if period == 'day':
        return day.isoformat()
    if period == 'week':
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{day.year:04d}-{day.month:02d}"


def _default_window(period, today):
    if period == 'day':
        return today - timedelta(days=30), today
    if period == 'week':
        return today - timedelta(days=90), today
    month, year = add_months(today.month, today.year, -11)
    return date(year, month, 1), today


def revenue_series(store, period='month', start=None, end=None, establishment_id=None, today=None):
    """
    Revenue of paid bookings grouped by check-in day, ISO week or month.
    Growth compares the last bucket with the one before it, in percent.
    """
    if period not in REVENUE_PERIODS:
        raise ValidationError(f'period must be one of {", ".join(REVENUE_PERIODS)}')
    today = today or date.today()
    if start and end:
        start, end = parse_date(start, 'start'), parse_date(end, 'end')
    else:
        start, end = _default_window(period, today)
    if end < start:
        raise ValidationError('End date must be on or after start date.')

    grouped = defaultdict(lambda: {'revenue': 0, 'bookings': 0})
    for b in _bookings(store, establishment_id):
        day = b.check_in_date.date()
        if b.payment_status != 'paid' or not start <= day <= end:
            continue
        bucket = grouped[_bucket(day, period)]
        bucket['revenue'] += b.total_amount
        bucket['bookings'] += 1

    data = [{'date': key, **values} for key, values in sorted(grouped.items())]
    total = sum(point['revenue'] for point in data)
    average = round(total / len(data), 2) if data else 0
    growth = 0.0
    if len(data) >= 2 and data[-2]['revenue'] > 0:
        growth = round((data[-1]['revenue'] - data[-2]['revenue']) / data[-2]['revenue'] * 100, 2)
    return {
        'period': period,
        'start': start.isoformat(),
        'end': end.isoformat(),
        'total': total,
        'average': average,
        'growth': growth,
        'data': data,
    }
