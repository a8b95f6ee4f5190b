# immoledger/models.py
from . import db
from datetime import datetime


def _iso(value):
    return value.isoformat() if value else None


class ManagedProperty(db.Model):
    """A rentable unit owned by a landlord."""
    __tablename__ = 'managed_properties'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(255))
    monthly_rent = db.Column(db.Integer, nullable=False)
    charges = db.Column(db.Integer, nullable=False, default=0)
    deposit = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='vacant')  # vacant | occupied | archived
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    tenants = db.relationship('Tenant', back_populates='property', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'address': self.address,
            'monthly_rent': self.monthly_rent,
            'charges': self.charges,
            'deposit': self.deposit,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Tenant(db.Model):
    """Occupant of exactly one managed property."""
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    property_id = db.Column(db.Integer, db.ForeignKey('managed_properties.id'), nullable=False, index=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(320))
    phone = db.Column(db.String(50))
    lease_start_date = db.Column(db.Date)
    lease_end_date = db.Column(db.Date)
    # Copied from the property at creation, may diverge afterwards
    monthly_rent = db.Column(db.Integer, nullable=False)
    due_day = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active')  # active | terminated
    terminated_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    property = db.relationship('ManagedProperty', back_populates='tenants')

    def to_dict(self):
        return {
            'id': self.id,
            'property_id': self.property_id,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'lease_start_date': _iso(self.lease_start_date),
            'lease_end_date': _iso(self.lease_end_date),
            'monthly_rent': self.monthly_rent,
            'due_day': self.due_day,
            'status': self.status,
            'terminated_at': _iso(self.terminated_at),
            'created_at': _iso(self.created_at),
        }


class DueDate(db.Model):
    """One monthly billing obligation. total_amount is frozen at creation."""
    __tablename__ = 'due_dates'
    __table_args__ = (db.UniqueConstraint('tenant_id', 'period_month', 'period_year'),)

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    property_id = db.Column(db.Integer, db.ForeignKey('managed_properties.id'), nullable=False, index=True)
    period_month = db.Column(db.Integer, nullable=False)
    period_year = db.Column(db.Integer, nullable=False)
    rent_amount = db.Column(db.Integer, nullable=False)
    charges_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending | paid | overdue | cancelled
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'property_id': self.property_id,
            'period_month': self.period_month,
            'period_year': self.period_year,
            'rent_amount': self.rent_amount,
            'charges_amount': self.charges_amount,
            'total_amount': self.total_amount,
            'due_date': _iso(self.due_date),
            'status': self.status,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Payment(db.Model):
    """A settlement recorded against a tenant, optionally tied to a due date."""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, index=True)
    property_id = db.Column(db.Integer, db.ForeignKey('managed_properties.id'), nullable=False, index=True)
    due_date_id = db.Column(db.Integer, db.ForeignKey('due_dates.id'), nullable=True, index=True)
    period_month = db.Column(db.Integer)
    period_year = db.Column(db.Integer)
    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(30), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    transaction_reference = db.Column(db.String(100))
    notes = db.Column(db.Text)
    recorded_by = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'property_id': self.property_id,
            'due_date_id': self.due_date_id,
            'period_month': self.period_month,
            'period_year': self.period_year,
            'amount': self.amount,
            'method': self.method,
            'payment_date': _iso(self.payment_date),
            'transaction_reference': self.transaction_reference,
            'notes': self.notes,
            'recorded_by': self.recorded_by,
            'created_at': _iso(self.created_at),
        }


class Booking(db.Model):
    """A hospitality reservation of one room. Pricing is recomputed on every edit."""
    __tablename__ = 'bookings'

    id = db.Column(db.Integer, primary_key=True)
    establishment_id = db.Column(db.String(64), nullable=False, index=True)
    room_id = db.Column(db.String(64), nullable=False, index=True)

    guest_name = db.Column(db.String(200), nullable=False)
    guest_email = db.Column(db.String(320))
    guest_phone = db.Column(db.String(50))

    check_in_date = db.Column(db.DateTime, nullable=False)
    check_out_date = db.Column(db.DateTime, nullable=False)
    nights = db.Column(db.Integer, nullable=False)

    price_per_night = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)
    taxes = db.Column(db.Integer, nullable=False, default=0)
    fees = db.Column(db.Integer, nullable=False, default=0)
    discount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    deposit_amount = db.Column(db.Integer, nullable=False, default=0)

    booking_reference = db.Column(db.String(40), unique=True, nullable=False)
    booking_source = db.Column(db.String(30), nullable=False, default='direct')

    status = db.Column(db.String(20), nullable=False, default='pending')
    payment_status = db.Column(db.String(20), nullable=False, default='pending')
    payment_method = db.Column(db.String(30))

    confirmed_at = db.Column(db.DateTime)
    checked_in_at = db.Column(db.DateTime)
    checked_out_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)
    balance_paid_at = db.Column(db.DateTime)

    guest_requests = db.Column(db.Text)
    internal_notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'establishment_id': self.establishment_id,
            'room_id': self.room_id,
            'guest_name': self.guest_name,
            'guest_email': self.guest_email,
            'guest_phone': self.guest_phone,
            'check_in_date': _iso(self.check_in_date),
            'check_out_date': _iso(self.check_out_date),
            'nights': self.nights,
            'price_per_night': self.price_per_night,
            'subtotal': self.subtotal,
            'taxes': self.taxes,
            'fees': self.fees,
            'discount': self.discount,
            'total_amount': self.total_amount,
            'currency': self.currency,
            'deposit_amount': self.deposit_amount,
            'booking_reference': self.booking_reference,
            'booking_source': self.booking_source,
            'status': self.status,
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'confirmed_at': _iso(self.confirmed_at),
            'checked_in_at': _iso(self.checked_in_at),
            'checked_out_at': _iso(self.checked_out_at),
            'cancelled_at': _iso(self.cancelled_at),
            'cancellation_reason': self.cancellation_reason,
            'balance_paid_at': _iso(self.balance_paid_at),
            'guest_requests': self.guest_requests,
            'internal_notes': self.internal_notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
