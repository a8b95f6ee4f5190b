from flask import Blueprint, request, jsonify
from ..context import current_actor, ledger_store, json_body
from ..services.occupancy import OccupancyCoordinator

rental_bp = Blueprint('rental', __name__)


def _coordinator():
    return OccupancyCoordinator(ledger_store())


# --- Managed properties ---

@rental_bp.route('/managed-properties', methods=['POST'])
def create_managed_property():
    prop = _coordinator().create_managed_property(current_actor(), json_body())
    return jsonify(prop.to_dict()), 201


@rental_bp.route('/managed-properties', methods=['GET'])
def list_managed_properties():
    include_archived = request.args.get('include_archived') in ('1', 'true')
    props = _coordinator().list_managed_properties(current_actor(), include_archived=include_archived)
    return jsonify([p.to_dict() for p in props]), 200


@rental_bp.route('/managed-properties/stats', methods=['GET'])
def managed_property_stats():
    return jsonify(_coordinator().property_stats(current_actor())), 200


@rental_bp.route('/managed-properties/<int:id>', methods=['PATCH'])
def update_managed_property(id):
    prop = _coordinator().update_managed_property(current_actor(), id, json_body())
    return jsonify(prop.to_dict()), 200


@rental_bp.route('/managed-properties/<int:id>/archive', methods=['POST'])
def archive_managed_property(id):
    prop = _coordinator().archive_managed_property(current_actor(), id)
    return jsonify(prop.to_dict()), 200


@rental_bp.route('/managed-properties/<int:id>/tenant', methods=['GET'])
def active_tenant(id):
    tenant = _coordinator().active_tenant_for_property(id)
    if not tenant:
        return jsonify({'error': 'No active tenant', 'kind': 'not_found'}), 404
    return jsonify(tenant.to_dict()), 200


# --- Tenants ---

@rental_bp.route('/tenants', methods=['POST'])
def create_tenant():
    tenant = _coordinator().on_tenant_created(current_actor(), json_body())
    return jsonify(tenant.to_dict()), 201


@rental_bp.route('/tenants/<int:id>/terminate', methods=['POST'])
def terminate_tenant(id):
    tenant = _coordinator().on_tenant_terminated(current_actor(), id)
    return jsonify(tenant.to_dict()), 200


@rental_bp.route('/tenants/<int:id>/activate', methods=['POST'])
def activate_tenant(id):
    tenant = _coordinator().on_tenant_activated(current_actor(), id)
    return jsonify(tenant.to_dict()), 200
