from flask import Blueprint, request, jsonify
from ..context import ledger_store, json_body
from ..errors import ValidationError
from ..services.reservations import ReservationEngine

bookings_bp = Blueprint('bookings', __name__)


def _engine():
    return ReservationEngine(ledger_store())


@bookings_bp.route('/bookings', methods=['POST'])
def create_booking():
    data = json_body()
    require_availability = bool(data.pop('require_availability', False))
    booking = _engine().create_booking(data, require_availability=require_availability)
    return jsonify(booking.to_dict()), 201


@bookings_bp.route('/bookings', methods=['GET'])
def list_bookings():
    bookings = _engine().list_bookings(
        establishment_id=request.args.get('establishment_id'),
        status=request.args.get('status'),
    )
    return jsonify([b.to_dict() for b in bookings]), 200


@bookings_bp.route('/bookings/<int:id>', methods=['GET'])
def get_booking(id):
    return jsonify(_engine().get_booking(id).to_dict()), 200


@bookings_bp.route('/bookings/<int:id>', methods=['PATCH'])
def update_booking(id):
    data = json_body()
    require_availability = bool(data.pop('require_availability', False))
    booking = _engine().update_booking(id, data, require_availability=require_availability)
    return jsonify(booking.to_dict()), 200


@bookings_bp.route('/bookings/<int:id>/confirm', methods=['POST'])
def confirm_booking(id):
    return jsonify(_engine().confirm_booking(id).to_dict()), 200


@bookings_bp.route('/bookings/<int:id>/check-in', methods=['POST'])
def check_in_booking(id):
    return jsonify(_engine().check_in_booking(id).to_dict()), 200


@bookings_bp.route('/bookings/<int:id>/check-out', methods=['POST'])
def check_out_booking(id):
    return jsonify(_engine().check_out_booking(id).to_dict()), 200


@bookings_bp.route('/bookings/<int:id>/cancel', methods=['POST'])
def cancel_booking(id):
    reason = json_body().get('reason')
    return jsonify(_engine().cancel_booking(id, reason).to_dict()), 200


@bookings_bp.route('/bookings/<int:id>/no-show', methods=['POST'])
def no_show_booking(id):
    return jsonify(_engine().mark_no_show(id).to_dict()), 200


@bookings_bp.route('/bookings/<int:id>/payment-status', methods=['PUT'])
def set_payment_status(id):
    data = json_body()
    if not data.get('payment_status'):
        raise ValidationError('payment_status is required')
    return jsonify(_engine().set_payment_status(id, data['payment_status']).to_dict()), 200


@bookings_bp.route('/rooms/<room_id>/availability', methods=['GET'])
def room_availability(room_id):
    check_in = request.args.get('check_in_date')
    check_out = request.args.get('check_out_date')
    if not all([check_in, check_out]):
        raise ValidationError('check_in_date and check_out_date are required')
    available = _engine().check_room_availability(room_id, check_in, check_out)
    return jsonify({'room_id': room_id, 'check_in_date': check_in, 'check_out_date': check_out,
                    'available': available}), 200
