"""
Fleet API
Drivers, vehicles and the history trail
"""

from flask import Blueprint, request, jsonify

from models import UserRole
from services import DriverService, VehicleService, AuditService
from utils.permissions import role_required, current_user_id
from utils.security import get_sanitized_audit_data

fleet_bp = Blueprint('fleet', __name__)

driver_service = DriverService()
vehicle_service = VehicleService()


def _payload():
    return request.get_json(silent=True) or {}


# Drivers

@fleet_bp.route('/drivers', methods=['GET'])
@role_required(UserRole.MANAGER)
def list_drivers():
    in_service = request.args.get('in_service', 'false').lower() == 'true'
    drivers = driver_service.list_drivers(in_service_only=in_service)
    return jsonify({'success': True, 'drivers': [driver.to_dict() for driver in drivers]})


@fleet_bp.route('/drivers', methods=['POST'])
@role_required(UserRole.MANAGER)
def create_driver():
    driver = driver_service.create_driver(_payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'driver': driver.to_dict()}), 201


@fleet_bp.route('/drivers/<int:driver_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def get_driver(driver_id):
    return jsonify({'success': True, 'driver': driver_service.get_driver(driver_id).to_dict()})


@fleet_bp.route('/drivers/<int:driver_id>', methods=['PUT'])
@role_required(UserRole.MANAGER)
def update_driver(driver_id):
    driver = driver_service.update_driver(driver_id, _payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'driver': driver.to_dict()})


@fleet_bp.route('/drivers/<int:driver_id>/departure', methods=['PATCH'])
@role_required(UserRole.MANAGER)
def record_departure(driver_id):
    driver = driver_service.record_departure(driver_id, _payload().get('departure_date'),
                                             performed_by=current_user_id())
    return jsonify({'success': True, 'driver': driver.to_dict()})


# Vehicles

@fleet_bp.route('/vehicles', methods=['GET'])
@role_required(UserRole.MANAGER)
def list_vehicles():
    vehicles = vehicle_service.list_vehicles(status=request.args.get('status'))
    return jsonify({'success': True, 'vehicles': [vehicle.to_dict() for vehicle in vehicles]})


@fleet_bp.route('/vehicles', methods=['POST'])
@role_required(UserRole.MANAGER)
def create_vehicle():
    vehicle = vehicle_service.create_vehicle(_payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'vehicle': vehicle.to_dict()}), 201


@fleet_bp.route('/vehicles/<int:vehicle_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def get_vehicle(vehicle_id):
    return jsonify({'success': True, 'vehicle': vehicle_service.get_vehicle(vehicle_id).to_dict()})


@fleet_bp.route('/vehicles/<int:vehicle_id>', methods=['PUT'])
@role_required(UserRole.MANAGER)
def update_vehicle(vehicle_id):
    vehicle = vehicle_service.update_vehicle(vehicle_id, _payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'vehicle': vehicle.to_dict()})


@fleet_bp.route('/vehicles/<int:vehicle_id>/status', methods=['PATCH'])
@role_required(UserRole.MANAGER)
def change_vehicle_status(vehicle_id):
    vehicle = vehicle_service.change_status(vehicle_id, _payload().get('status'),
                                            performed_by=current_user_id())
    return jsonify({'success': True, 'vehicle': vehicle.to_dict()})


@fleet_bp.route('/vehicles/<int:vehicle_id>/driver', methods=['PUT', 'DELETE'])
@role_required(UserRole.MANAGER)
def vehicle_driver(vehicle_id):
    """PUT links a driver to the vehicle, DELETE releases them"""
    result = vehicle_service.update_driver_vehicle_relationship(
        _payload().get('driver_id') or request.args.get('driver_id', type=int),
        vehicle_id,
        assign=request.method == 'PUT',
        performed_by=current_user_id()
    )
    return jsonify({'success': True, **result})


# History

@fleet_bp.route('/history', methods=['GET'])
@role_required(UserRole.MANAGER)
def history():
    module = request.args.get('module')
    entity_id = request.args.get('entity_id', type=int)
    limit = min(request.args.get('limit', 50, type=int), 200)

    if module and entity_id is not None:
        entries = AuditService.get_entity_history(module, entity_id, limit=limit)
    else:
        entries = AuditService.get_recent_activities(limit=limit, module=module)
    return jsonify({'success': True, 'history': [get_sanitized_audit_data(entry) for entry in entries]})
