# immoledger/services/periods.py
"""Calendar and money helpers shared by the billing and reservation engines."""
from datetime import date, datetime, timedelta, timezone
import calendar
import math

from ..errors import ValidationError

SECONDS_PER_NIGHT = timedelta(days=1).total_seconds()


def days_in_month(year, month):
    return calendar.monthrange(year, month)[1]


def clamp_due_date(year, month, due_day):
    """Due date for a period, pulling a too-large due day back to the month's last day."""
    return date(year, month, min(due_day, days_in_month(year, month)))


def period_key(year, month):
    return f"{year:04d}-{month:02d}"


def add_months(month, year, n):
    index = year * 12 + (month - 1) + n
    return index % 12 + 1, index // 12


def iter_periods(start, end, limit):
    """
    Yield (month, year) pairs from ``start`` to ``end`` inclusive, both
    given as (month, year), stopping after ``limit`` periods.
    """
    month, year = start
    end_month, end_year = end
    count = 0
    while (year, month) <= (end_year, end_month) and count < limit:
        yield month, year
        month, year = add_months(month, year, 1)
        count += 1


def validate_period(month, year):
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise ValidationError('period month and year must be integers')
    if not 1 <= month <= 12:
        raise ValidationError('period month must be between 1 and 12')
    if year < 1:
        raise ValidationError('period year must be a positive integer')
    return month, year


def _naive_utc(value):
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_stay_date(value, field='date'):
    """
    Coerce an ISO string, date or datetime into a naive datetime. Values
    carrying a UTC offset are converted to UTC, which is how they are stored.
    """
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return _naive_utc(datetime.fromisoformat(value))
        except ValueError:
            pass
    raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def parse_date(value, field='date'):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def nights_between(check_in, check_out):
    """Nights billed for a stay: partial days round up, never fewer than one."""
    seconds = (parse_stay_date(check_out) - parse_stay_date(check_in)).total_seconds()
    return max(1, math.ceil(seconds / SECONDS_PER_NIGHT))


def to_amount(value, field, allow_zero=True):
    """Money is held as an integer count of the currency's smallest unit."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'{field} must be an integer amount')
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer amount')
    if amount != value and str(amount) != str(value).strip():
        raise ValidationError(f'{field} must be an integer amount')
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f'{field} must be positive' if not allow_zero else f'{field} must not be negative')
    return amount
