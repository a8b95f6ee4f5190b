from flask import Blueprint, request, jsonify
from ..context import current_actor, ledger_store, json_body
from ..errors import ValidationError
from ..services.billing import RentalBillingEngine, DUE_STATUSES

payments_bp = Blueprint('payments', __name__)


def _engine():
    return RentalBillingEngine(ledger_store())


def _int_arg(name):
    value = request.args.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')


def _scope_args():
    return {
        'tenant_id': _int_arg('tenant_id'),
        'property_id': _int_arg('property_id'),
        'actor_id': current_actor(),
    }


# --- Due dates ---

@payments_bp.route('/tenants/<int:id>/due-dates/generate', methods=['POST'])
def generate_due_dates(id):
    data = json_body()
    required_fields = ['start_month', 'start_year']
    if not all(field in data for field in required_fields):
        return jsonify({'error': 'start_month and start_year are required', 'kind': 'validation_error'}), 400
    created = _engine().generate_due_dates(
        id, data['start_month'], data['start_year'],
        data.get('end_month'), data.get('end_year'),
        actor_id=current_actor(),
    )
    return jsonify([d.to_dict() for d in created]), 201


@payments_bp.route('/due-dates', methods=['GET'])
def list_due_dates():
    dues = _engine().list_due_dates(**_scope_args())
    status = request.args.get('status')
    if status:
        if status not in DUE_STATUSES:
            raise ValidationError(f'status must be one of {", ".join(DUE_STATUSES)}')
        dues = [d for d in dues if d.status == status]
    return jsonify([d.to_dict() for d in dues]), 200


@payments_bp.route('/due-dates/<int:id>/recheck', methods=['POST'])
def recheck_due_date(id):
    current_actor()
    return jsonify(_engine().recheck_due_date(id).to_dict()), 200


@payments_bp.route('/due-dates/<int:id>/cancel', methods=['POST'])
def cancel_due_date(id):
    due = _engine().cancel_due_date(id, actor_id=current_actor())
    return jsonify(due.to_dict()), 200


@payments_bp.route('/due-dates/sweep-overdue', methods=['POST'])
def sweep_overdue():
    changed = _engine().sweep_overdue(**_scope_args())
    return jsonify({'updated': len(changed), 'due_dates': [d.to_dict() for d in changed]}), 200


# --- Payments ---

@payments_bp.route('/payments', methods=['POST'])
def create_payment():
    data = json_body()
    required_fields = ['tenant_id', 'amount']
    if not all(field in data for field in required_fields):
        return jsonify({'error': 'tenant_id and amount are required', 'kind': 'validation_error'}), 400
    payment = _engine().create_payment(
        data['tenant_id'],
        data.get('due_date_id'),
        data['amount'],
        data.get('method', 'cash'),
        payment_date=data.get('payment_date'),
        actor_id=current_actor(),
        transaction_reference=data.get('transaction_reference'),
        notes=data.get('notes'),
    )
    return jsonify(payment.to_dict()), 201


@payments_bp.route('/payments', methods=['GET'])
def list_payments():
    payments = _engine().list_payments(due_date_id=_int_arg('due_date_id'), **_scope_args())
    return jsonify([p.to_dict() for p in payments]), 200


@payments_bp.route('/payments/stats', methods=['GET'])
def payment_stats():
    return jsonify(_engine().compute_stats(**_scope_args())), 200
