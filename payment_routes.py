"""
Payment API
Daily payment lookups and the manager's confirm/correct/reject actions
"""

from flask import Blueprint, request, jsonify

from models import UserRole
from services import PaymentService
from utils.permissions import role_required, current_user_id

payment_bp = Blueprint('payments', __name__)

payment_service = PaymentService()


def _payload():
    return request.get_json(silent=True) or {}


def _payment_list(payments):
    return jsonify({'success': True, 'payments': [payment.to_dict() for payment in payments]})


@payment_bp.route('/driver/<int:driver_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def driver_payments(driver_id):
    return _payment_list(payment_service.get_driver_payments(driver_id))


@payment_bp.route('/vehicle/<int:vehicle_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def vehicle_payments(vehicle_id):
    return _payment_list(payment_service.get_vehicle_payments(vehicle_id))


@payment_bp.route('/date/<day>', methods=['GET'])
@role_required(UserRole.MANAGER)
def payments_by_date(day):
    return _payment_list(payment_service.get_payments_by_date(day))


@payment_bp.route('/period', methods=['GET'])
@role_required(UserRole.MANAGER)
def payments_by_period():
    return _payment_list(payment_service.get_payments_by_period(request.args.get('start'),
                                                                request.args.get('end')))


@payment_bp.route('/schedule/<int:schedule_id>/missing', methods=['GET'])
@role_required(UserRole.MANAGER)
def missing_payments(schedule_id):
    """Elapsed days of the schedule that have no payment yet"""
    missing = payment_service.get_missing_payment_days(schedule_id)
    return jsonify({
        'success': True,
        'schedule_id': schedule_id,
        'unpaid_days': [day.isoformat() for day in missing],
    })


@payment_bp.route('/<int:payment_id>', methods=['GET'])
@role_required(UserRole.MANAGER)
def get_payment(payment_id):
    return jsonify({'success': True, 'payment': payment_service.get_payment(payment_id).to_dict()})


@payment_bp.route('/<int:payment_id>', methods=['PUT'])
@role_required(UserRole.MANAGER)
def update_payment(payment_id):
    payment = payment_service.record_payment(payment_id, _payload(), performed_by=current_user_id())
    return jsonify({'success': True, 'payment': payment.to_dict()})


@payment_bp.route('/<int:payment_id>/confirm', methods=['PATCH'])
@role_required(UserRole.MANAGER)
def confirm_payment(payment_id):
    payment = payment_service.confirm_payment(payment_id, performed_by=current_user_id())
    return jsonify({'success': True, 'payment': payment.to_dict()})


@payment_bp.route('/<int:payment_id>/reject', methods=['PATCH'])
@role_required(UserRole.MANAGER)
def reject_payment(payment_id):
    payment = payment_service.reject_payment(payment_id, performed_by=current_user_id())
    return jsonify({'success': True, 'payment': payment.to_dict()})
