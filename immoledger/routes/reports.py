from flask import Blueprint, request, jsonify
from ..context import ledger_store
from ..services.reports import booking_stats, revenue_series

reports_bp = Blueprint('reports', __name__)


# Dashboard counters for the hospitality module
@reports_bp.route('/reports/bookings', methods=['GET'])
def get_booking_stats():
    stats = booking_stats(ledger_store(), establishment_id=request.args.get('establishment_id'))
    return jsonify(stats), 200


# Revenue of paid bookings grouped by day, week or month
@reports_bp.route('/reports/revenue', methods=['GET'])
def get_revenue():
    result = revenue_series(
        ledger_store(),
        period=request.args.get('period', 'month'),
        start=request.args.get('start_date'),
        end=request.args.get('end_date'),
        establishment_id=request.args.get('establishment_id'),
    )
    return jsonify(result), 200
