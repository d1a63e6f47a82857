"""
Maintenance API
Maintenance windows, their conflicts with schedules and vehicle status checks
"""

from flask import Blueprint, request, jsonify

from models import UserRole
from services import MaintenanceService
from utils.permissions import role_required, current_user_id

maintenance_bp = Blueprint('maintenances', __name__)

maintenance_service = MaintenanceService()


def _payload():
    return request.get_json(silent=True) or {}


def _maintenance_list(maintenances):
    return jsonify({'success': True, 'maintenances': [maintenance.to_dict() for maintenance in maintenances]})


@maintenance_bp.route('/maintenances', methods=['GET'])
@role_required(UserRole.MANAGER)
def list_maintenances():
    start, end = request.args.get('start'), request.args.get('end')
    if start or end:
        return _maintenance_list(maintenance_service.get_maintenances_by_period(start, end))
    return _maintenance_list(maintenance_service.list_maintenances())


@maintenance_bp.route('/maintenances', methods=['POST'])
@role_required(UserRole.MANAGER)
def create_maintenance():
    maintenance = maintenance_service.create_maintenance(_payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'maintenance': maintenance.to_dict()}), 201


@maintenance_bp.route('/maintenances/<int:maintenance_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def get_maintenance(maintenance_id):
    maintenance = maintenance_service.get_maintenance(maintenance_id)
    return jsonify({'success': True, 'maintenance': maintenance.to_dict()})


@maintenance_bp.route('/maintenances/<int:maintenance_id>', methods=['PUT'])
@role_required(UserRole.MANAGER)
def update_maintenance(maintenance_id):
    maintenance = maintenance_service.update_maintenance(maintenance_id, _payload(),
                                                         performed_by=current_user_id())
    return jsonify({'success': True, 'maintenance': maintenance.to_dict()})


@maintenance_bp.route('/maintenances/<int:maintenance_id>', methods=['DELETE'])
@role_required(UserRole.MANAGER)
def delete_maintenance(maintenance_id):
    maintenance_service.delete_maintenance(maintenance_id, performed_by=current_user_id())
    return jsonify({'success': True, 'message': 'Maintenance deleted'})


@maintenance_bp.route('/maintenances/<int:maintenance_id>/complete', methods=['PATCH'])
@role_required(UserRole.MANAGER)
def complete_maintenance(maintenance_id):
    maintenance = maintenance_service.complete_maintenance(maintenance_id, _payload(),
                                                           performed_by=current_user_id())
    return jsonify({'success': True, 'maintenance': maintenance.to_dict()})


@maintenance_bp.route('/maintenances/vehicle/<int:vehicle_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def vehicle_maintenances(vehicle_id):
    return _maintenance_list(maintenance_service.get_vehicle_maintenances(vehicle_id))


@maintenance_bp.route('/maintenances/type/<maintenance_type>', methods=['GET'])
@role_required(UserRole.MANAGER)
def maintenances_by_type(maintenance_type):
    return _maintenance_list(maintenance_service.get_maintenances_by_type(maintenance_type))


@maintenance_bp.route('/maintenances/conflicts', methods=['POST'])
@role_required(UserRole.MANAGER)
def check_conflicts():
    return jsonify({'success': True, **maintenance_service.check_conflicts(_payload())})


@maintenance_bp.route('/maintenances/<int:maintenance_id>/schedule-conflicts', methods=['GET'])
@role_required(UserRole.MANAGER)
def schedule_conflicts(maintenance_id):
    schedules = maintenance_service.get_schedule_conflicts(maintenance_id)
    return jsonify({'success': True, 'schedules': [schedule.to_dict() for schedule in schedules]})


@maintenance_bp.route('/maintenances/<int:maintenance_id>/resolve-conflicts', methods=['POST'])
@role_required(UserRole.MANAGER)
def resolve_conflicts(maintenance_id):
    """Cancel the schedules falling inside the maintenance window"""
    canceled = maintenance_service.resolve_schedule_conflicts(maintenance_id, performed_by=current_user_id())
    return jsonify({'success': True, 'canceled': [schedule.to_dict() for schedule in canceled]})


@maintenance_bp.route('/maintenances/check-status', methods=['POST'])
@role_required(UserRole.MANAGER)
def check_status():
    corrections = maintenance_service.check_status_consistency(performed_by=current_user_id())
    return jsonify({'success': True, 'corrections': corrections, 'total_corrected': len(corrections)})
