# immoledger/services/reservations.py
"""
Hospitality bookings: nightly pricing, booking references and the
status / payment-status lifecycle.

Unlike rental due dates, a booking's totals are never frozen: any edit to
the stay dates, nightly price or extras re-prices the whole booking from
the merged field set.
"""
from datetime import datetime
import logging
import secrets
import string

from ..config import BookingConfig
from ..errors import ConflictError, InvalidTransition, ValidationError
from .periods import nights_between, parse_stay_date, to_amount

_logger = logging.getLogger(__name__)

STATUSES = ('pending', 'confirmed', 'checked_in', 'checked_out', 'cancelled', 'no_show')
PAYMENT_STATUSES = ('pending', 'partial', 'paid', 'refunded')

# Allowed status moves. cancelled and checked_out are terminal.
TRANSITIONS = {
    'pending': {'confirmed', 'checked_in', 'cancelled', 'no_show'},
    'confirmed': {'checked_in', 'cancelled', 'no_show'},
    'checked_in': {'checked_out', 'cancelled'},
    'no_show': {'cancelled'},
    'checked_out': set(),
    'cancelled': set(),
}

# Timestamp written the first time a booking enters each status
STAMPS = {
    'confirmed': 'confirmed_at',
    'checked_in': 'checked_in_at',
    'checked_out': 'checked_out_at',
    'cancelled': 'cancelled_at',
}

# Statuses that hold the room
OCCUPYING = ('pending', 'confirmed', 'checked_in')

PRICING_FIELDS = ('check_in_date', 'check_out_date', 'price_per_night', 'taxes', 'fees', 'discount')
DETAIL_FIELDS = ('room_id', 'guest_name', 'guest_email', 'guest_phone', 'currency', 'deposit_amount',
                 'booking_source', 'payment_method', 'cancellation_reason', 'guest_requests',
                 'internal_notes')
REQUIRED_FIELDS = ('establishment_id', 'room_id', 'guest_name', 'check_in_date', 'check_out_date',
                   'price_per_night')

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def price_stay(check_in_date, check_out_date, price_per_night, taxes=0, fees=0, discount=0):
    """
    Nights, subtotal and total for a stay. Extras default to zero when
    missing; the total is subtotal + taxes + fees - discount.
    """
    check_in = parse_stay_date(check_in_date, 'check_in_date')
    check_out = parse_stay_date(check_out_date, 'check_out_date')
    if check_out <= check_in:
        raise ValidationError('check_out_date must be after check_in_date')
    price = to_amount(price_per_night, 'price_per_night', allow_zero=False)
    taxes = to_amount(taxes or 0, 'taxes')
    fees = to_amount(fees or 0, 'fees')
    discount = to_amount(discount or 0, 'discount')

    nights = nights_between(check_in, check_out)
    subtotal = price * nights
    total = subtotal + taxes + fees - discount
    if total < 0:
        raise ValidationError('discount cannot exceed the booking amount')
    return {
        'check_in_date': check_in,
        'check_out_date': check_out,
        'nights': nights,
        'price_per_night': price,
        'subtotal': subtotal,
        'taxes': taxes,
        'fees': fees,
        'discount': discount,
        'total_amount': total,
    }


def _check_choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f'{field} must be one of {", ".join(allowed)}')
    return value


class ReservationEngine:
    def __init__(self, store, clock=None, reference_prefix=None, rng=None):
        self.store = store
        self.clock = clock or datetime.now
        self.reference_prefix = reference_prefix or BookingConfig.BOOKING_REFERENCE_PREFIX
        self.rng = rng or secrets.SystemRandom()

    # --- References ---

    def generate_reference(self, check_in_date):
        year = parse_stay_date(check_in_date, 'check_in_date').year
        suffix = ''.join(self.rng.choice(_SUFFIX_ALPHABET)
                         for _ in range(BookingConfig.BOOKING_REFERENCE_SUFFIX_LENGTH))
        return f'{self.reference_prefix}-{year}-{suffix}'

    def _reference_taken(self, reference):
        return bool(self.store.query('bookings', {'booking_reference': reference}))

    def _new_reference(self, check_in_date):
        for _ in range(BookingConfig.BOOKING_REFERENCE_ATTEMPTS):
            reference = self.generate_reference(check_in_date)
            if not self._reference_taken(reference):
                return reference
            _logger.warning('booking reference %s already taken, retrying', reference)
        raise ConflictError('Could not allocate a unique booking reference')

    # --- Availability ---

    def check_room_availability(self, room_id, check_in_date, check_out_date, exclude_booking_id=None):
        """True when no booking holding the room overlaps [check_in, check_out)."""
        overlapping = self.store.query('bookings', {
            'room_id': room_id,
            'status': OCCUPYING,
            'check_in_date__lt': parse_stay_date(check_out_date, 'check_out_date'),
            'check_out_date__gt': parse_stay_date(check_in_date, 'check_in_date'),
        })
        return not [b for b in overlapping if b.id != exclude_booking_id]

    def _require_available(self, room_id, pricing, exclude_booking_id=None):
        if not self.check_room_availability(room_id, pricing['check_in_date'], pricing['check_out_date'],
                                            exclude_booking_id):
            raise ConflictError(f'Room {room_id} is not available for the selected dates')

    # --- Create / update ---

    def create_booking(self, data, require_availability=False):
        missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, '')]
        if missing:
            raise ValidationError(f'Missing fields: {", ".join(missing)}')
        record = price_stay(**{f: data.get(f) for f in PRICING_FIELDS})
        record['establishment_id'] = str(data['establishment_id'])
        for field in DETAIL_FIELDS:
            if data.get(field) is not None:
                record[field] = data[field]
        record['room_id'] = str(record['room_id'])
        record['currency'] = record.get('currency') or BookingConfig.DEFAULT_CURRENCY
        record['deposit_amount'] = to_amount(data.get('deposit_amount') or 0, 'deposit_amount')
        record['booking_source'] = record.get('booking_source') or 'direct'

        status = _check_choice(data.get('status') or 'pending', STATUSES, 'status')
        record['status'] = status
        record['payment_status'] = _check_choice(data.get('payment_status') or 'pending',
                                                 PAYMENT_STATUSES, 'payment_status')
        now = self.clock()
        if status in STAMPS:
            record[STAMPS[status]] = now
        if record['payment_status'] == 'paid':
            record['balance_paid_at'] = now

        reference = data.get('booking_reference')
        if reference:
            if self._reference_taken(reference):
                raise ConflictError(f'Booking reference {reference} already exists')
        else:
            reference = self._new_reference(record['check_in_date'])
        record['booking_reference'] = reference

        if require_availability:
            self._require_available(record['room_id'], record)
        with self.store.atomic():
            booking = self.store.insert('bookings', record)
        _logger.info('booking %s created for room %s (%d nights, total %d %s)',
                     booking.booking_reference, booking.room_id, booking.nights,
                     booking.total_amount, booking.currency)
        return booking

    def update_booking(self, booking_id, patch, require_availability=False):
        """
        Apply a partial update. Any pricing field in the patch re-prices the
        booking from existing values merged with the patch; a status change
        must be a legal move and stamps its timestamp only once.
        """
        booking = self.store.require('bookings', booking_id)
        allowed = set(PRICING_FIELDS) | set(DETAIL_FIELDS) | {'status', 'payment_status'}
        unknown = sorted(set(patch) - allowed)
        if unknown:
            raise ValidationError(f'Fields cannot be updated: {", ".join(unknown)}')

        changes = {f: patch[f] for f in DETAIL_FIELDS if f in patch}
        if 'room_id' in changes:
            changes['room_id'] = str(changes['room_id'])
        if 'deposit_amount' in changes:
            changes['deposit_amount'] = to_amount(changes['deposit_amount'] or 0, 'deposit_amount')
        if any(f in patch for f in PRICING_FIELDS):
            merged = {f: patch[f] if f in patch else getattr(booking, f) for f in PRICING_FIELDS}
            changes.update(price_stay(**merged))

        now = self.clock()
        new_status = patch.get('status', booking.status)
        if new_status != booking.status:
            _check_choice(new_status, STATUSES, 'status')
            if new_status not in TRANSITIONS[booking.status]:
                raise InvalidTransition(f'Cannot move booking from {booking.status} to {new_status}')
            changes['status'] = new_status
            stamp = STAMPS.get(new_status)
            if stamp and getattr(booking, stamp) is None:
                changes[stamp] = now
        if 'payment_status' in patch:
            changes['payment_status'] = _check_choice(patch['payment_status'], PAYMENT_STATUSES, 'payment_status')
            if changes['payment_status'] == 'paid' and booking.balance_paid_at is None:
                changes['balance_paid_at'] = now

        if require_availability and ('check_in_date' in changes or 'room_id' in changes):
            stay = {
                'check_in_date': changes.get('check_in_date', booking.check_in_date),
                'check_out_date': changes.get('check_out_date', booking.check_out_date),
            }
            self._require_available(changes.get('room_id', booking.room_id), stay, booking.id)

        with self.store.atomic():
            booking = self.store.update_by_id('bookings', booking.id, changes)
        if 'status' in changes:
            _logger.info('booking %s is now %s', booking.booking_reference, booking.status)
        return booking

    # --- Lifecycle ---

    def _transition(self, booking_id, target, extra=None):
        booking = self.store.require('bookings', booking_id)
        if target not in TRANSITIONS[booking.status]:
            raise InvalidTransition(f'Cannot move booking from {booking.status} to {target}')
        patch = dict(extra or {}, status=target)
        return self.update_booking(booking.id, patch)

    def confirm_booking(self, booking_id):
        return self._transition(booking_id, 'confirmed')

    def check_in_booking(self, booking_id):
        return self._transition(booking_id, 'checked_in')

    def check_out_booking(self, booking_id):
        return self._transition(booking_id, 'checked_out')

    def cancel_booking(self, booking_id, reason=None):
        extra = {'cancellation_reason': reason} if reason else None
        return self._transition(booking_id, 'cancelled', extra)

    def mark_no_show(self, booking_id):
        return self._transition(booking_id, 'no_show')

    def set_payment_status(self, booking_id, payment_status):
        return self.update_booking(booking_id, {'payment_status': payment_status})

    # --- Reads ---

    def get_booking(self, booking_id):
        return self.store.require('bookings', booking_id)

    def list_bookings(self, establishment_id=None, status=None):
        filter = {}
        if establishment_id is not None:
            filter['establishment_id'] = str(establishment_id)
        if status is not None:
            filter['status'] = status
        return self.store.query('bookings', filter, order=['-check_in_date', '-id'])
