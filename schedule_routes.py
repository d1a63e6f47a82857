"""
Schedule API
Driver/vehicle assignments, conflict checks and the lifecycle sweep
"""

from flask import Blueprint, request, jsonify

from models import UserRole, Driver
from services import ScheduleService, PaymentService
from services.validation import parse_id
from utils.permissions import role_required, current_user_id

schedule_bp = Blueprint('schedules', __name__)

schedule_service = ScheduleService()
payment_service = PaymentService()


def _payload():
    return request.get_json(silent=True) or {}


def _schedule_list(schedules):
    return jsonify({'success': True, 'schedules': [schedule.to_dict() for schedule in schedules]})


@schedule_bp.route('', methods=['GET'])
@role_required(UserRole.MANAGER)
def list_schedules():
    return _schedule_list(schedule_service.list_schedules())


@schedule_bp.route('', methods=['POST'])
@role_required(UserRole.MANAGER)
def create_schedule():
    schedule = schedule_service.create_schedule(_payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'schedule': schedule.to_dict()}), 201


@schedule_bp.route('/<int:schedule_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def get_schedule(schedule_id):
    return jsonify({'success': True, 'schedule': schedule_service.get_schedule(schedule_id).to_dict()})


@schedule_bp.route('/<int:schedule_id>', methods=['PUT'])
@role_required(UserRole.MANAGER)
def update_schedule(schedule_id):
    schedule = schedule_service.update_schedule(schedule_id, _payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'schedule': schedule.to_dict()})


@schedule_bp.route('/<int:schedule_id>', methods=['DELETE'])
@role_required(UserRole.MANAGER)
def delete_schedule(schedule_id):
    schedule_service.delete_schedule(schedule_id, performed_by=current_user_id())
    return jsonify({'success': True, 'message': 'Schedule deleted'})


@schedule_bp.route('/<int:schedule_id>/status', methods=['PATCH'])
@role_required(UserRole.MANAGER)
def change_schedule_status(schedule_id):
    schedule = schedule_service.change_status(schedule_id, _payload().get('status'),
                                              performed_by=current_user_id())
    return jsonify({'success': True, 'schedule': schedule.to_dict()})


@schedule_bp.route('/current', methods=['GET'])
@role_required(UserRole.MANAGER)
def current_schedules():
    return _schedule_list(schedule_service.get_current_schedules())


@schedule_bp.route('/future', methods=['GET'])
@role_required(UserRole.MANAGER)
def future_schedules():
    return _schedule_list(schedule_service.get_future_schedules())


@schedule_bp.route('/mine', methods=['GET'])
@role_required(UserRole.DRIVER)
def my_schedules():
    """Schedules of the driver profile linked to the current account"""
    driver = Driver.query.filter_by(user_id=current_user_id()).first()
    if driver is None:
        return _schedule_list([])
    return _schedule_list(schedule_service.get_driver_schedules(driver.id))


@schedule_bp.route('/driver/<int:driver_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def driver_schedules(driver_id):
    return _schedule_list(schedule_service.get_driver_schedules(driver_id))


@schedule_bp.route('/vehicle/<int:vehicle_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def vehicle_schedules(vehicle_id):
    return _schedule_list(schedule_service.get_vehicle_schedules(vehicle_id))


@schedule_bp.route('/date/<day>', methods=['GET'])
@role_required(UserRole.MANAGER)
def schedules_by_date(day):
    return _schedule_list(schedule_service.get_schedules_by_date(day))


@schedule_bp.route('/period', methods=['GET'])
@role_required(UserRole.MANAGER)
def schedules_by_period():
    return _schedule_list(schedule_service.get_schedules_by_period(request.args.get('start'),
                                                                  request.args.get('end')))


@schedule_bp.route('/conflicts', methods=['POST'])
@role_required(UserRole.MANAGER)
def check_conflicts():
    """Report what a schedule with these values would collide with, without saving it"""
    return jsonify({'success': True, **schedule_service.check_conflicts(_payload())})


@schedule_bp.route('/check-expired', methods=['POST'])
@role_required(UserRole.MANAGER)
def check_expired():
    driver_id = parse_id(_payload().get('driver_id'), 'driver_id')
    closed = schedule_service.close_elapsed_schedules(driver_id=driver_id, performed_by=current_user_id())
    activated = schedule_service.activate_pending_schedules()
    return jsonify({
        'success': True,
        'completed': [schedule.to_dict() for schedule in closed['completed']],
        'canceled': [schedule.to_dict() for schedule in closed['canceled']],
        'activated': [schedule.to_dict() for schedule in activated],
    })


@schedule_bp.route('/<int:schedule_id>/payments', methods=['GET'])
@role_required(UserRole.MANAGER)
def schedule_payments(schedule_id):
    payments = payment_service.get_schedule_payments(schedule_id)
    return jsonify({'success': True, 'payments': [payment.to_dict() for payment in payments]})


@schedule_bp.route('/<int:schedule_id>/payments/generate', methods=['POST'])
@role_required(UserRole.MANAGER)
def generate_schedule_payments(schedule_id):
    payments = payment_service.generate_for_schedule(schedule_id)
    return jsonify({'success': True, 'payments': [payment.to_dict() for payment in payments]}), 201
