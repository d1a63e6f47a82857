"""
Payment Service

Daily payments owed by the driver of a schedule. A pending payment of amount
zero is generated for every elapsed day of a schedule and later confirmed,
corrected or rejected by a manager.
"""

from typing import Optional, Dict, Any, List
from datetime import date, timedelta
import logging
from sqlalchemy import or_
from models import (db, Payment, PaymentStatus, PaymentType, Schedule, Driver, Vehicle,
                    ACTIVE_SCHEDULE_STATUSES)
from timezone_utils import get_local_today
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .errors import NotFoundError, ValidationError
from .validation import parse_amount, parse_date, parse_enum, validate_period

logger = logging.getLogger(__name__)


def generate_daily_payments(schedule: Schedule) -> List[Payment]:
    """
    Add one pending payment per elapsed schedule day that has none yet.

    Days run from the start date to the end date, or to today for an
    open-ended schedule, never past today. Runs inside the caller's
    transaction.
    """
    today = get_local_today()
    last_day = min(schedule.end_date or today, today)
    if last_day < schedule.schedule_date:
        return []

    existing_days = {
        payment_date for (payment_date,) in db.session.query(Payment.payment_date)
        .filter(Payment.schedule_id == schedule.id,
                Payment.payment_date.between(schedule.schedule_date, last_day))
    }

    created = []
    current = schedule.schedule_date
    while current <= last_day:
        if current not in existing_days:
            payment = Payment()
            payment.schedule_id = schedule.id
            payment.amount = 0.0
            payment.payment_date = current
            payment.payment_type = PaymentType.CASH
            payment.status = PaymentStatus.PENDING
            payment.is_meeting_target = False
            payment.comments = 'Generated automatically'
            db.session.add(payment)
            created.append(payment)
        current += timedelta(days=1)

    if created:
        db.session.flush()
        AuditService.log_action(
            action='schedule_payments_generated',
            module='schedules',
            entity_id=schedule.id,
            new_values={'count': len(created),
                        'days': [payment.payment_date.isoformat() for payment in created]},
            description=f"{len(created)} daily payment(s) generated for schedule {schedule.id}"
        )
        logger.info(f"Generated {len(created)} daily payment(s) for schedule {schedule.id}")
    return created


def meets_target(schedule: Schedule, amount: float) -> bool:
    target = schedule.vehicle.daily_income_target if schedule.vehicle else 0
    return bool(target) and target > 0 and amount >= target


class PaymentService:
    """Service class for daily payment operations"""

    def __init__(self):
        self.audit_service = AuditService()

    def get_payment(self, payment_id: int) -> Payment:
        payment = db.session.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", code='PAYMENT_NOT_FOUND')
        return payment

    def get_schedule_payments(self, schedule_id: int) -> List[Payment]:
        if not db.session.get(Schedule, schedule_id):
            raise NotFoundError("Schedule not found", code='SCHEDULE_NOT_FOUND')
        return Payment.query.filter_by(schedule_id=schedule_id).order_by(Payment.payment_date).all()

    def get_driver_payments(self, driver_id: int) -> List[Payment]:
        if not db.session.get(Driver, driver_id):
            raise NotFoundError("Driver not found", code='DRIVER_NOT_FOUND')
        return Payment.query.join(Schedule).filter(Schedule.driver_id == driver_id) \
                            .order_by(Payment.payment_date.desc(), Payment.id.desc()).all()

    def get_vehicle_payments(self, vehicle_id: int) -> List[Payment]:
        if not db.session.get(Vehicle, vehicle_id):
            raise NotFoundError("Vehicle not found", code='VEHICLE_NOT_FOUND')
        return Payment.query.join(Schedule).filter(Schedule.vehicle_id == vehicle_id) \
                            .order_by(Payment.payment_date.desc(), Payment.id.desc()).all()

    def get_payments_by_date(self, day: Any) -> List[Payment]:
        day = parse_date(day, 'date', required=True)
        return Payment.query.filter(Payment.payment_date == day).order_by(Payment.id).all()

    def get_payments_by_period(self, start: Any, end: Any) -> List[Payment]:
        start_date = parse_date(start, 'start', required=True)
        end_date = parse_date(end, 'end', required=True)
        validate_period(start_date, end_date, 'end')
        return Payment.query.filter(Payment.payment_date.between(start_date, end_date)) \
                            .order_by(Payment.payment_date, Payment.id).all()

    def get_missing_payment_days(self, schedule_id: int) -> List[date]:
        """
        Elapsed days of a schedule without a payment, rejected payments not
        counting. Days run to the end date, or to today when open-ended.
        """
        schedule = db.session.get(Schedule, schedule_id)
        if not schedule:
            raise NotFoundError("Schedule not found", code='SCHEDULE_NOT_FOUND')

        today = get_local_today()
        last_day = min(schedule.end_date or today, today)
        paid_days = {
            payment_date for (payment_date,) in db.session.query(Payment.payment_date)
            .filter(Payment.schedule_id == schedule.id, Payment.status != PaymentStatus.REJECTED)
        }

        missing = []
        current = schedule.schedule_date
        while current <= last_day:
            if current not in paid_days:
                missing.append(current)
            current += timedelta(days=1)
        return missing

    @TransactionHelper.with_transaction
    def generate_for_schedule(self, schedule_id: int) -> List[Payment]:
        schedule = db.session.get(Schedule, schedule_id)
        if not schedule:
            raise NotFoundError("Schedule not found", code='SCHEDULE_NOT_FOUND')
        return generate_daily_payments(schedule)

    @TransactionHelper.with_transaction
    def generate_for_active_schedules(self) -> int:
        """
        Daily job: generate payments for every pending or assigned schedule
        still running today.

        Returns:
            Number of payments created
        """
        today = get_local_today()
        schedules = Schedule.query.filter(
            Schedule.status.in_(ACTIVE_SCHEDULE_STATUSES),
            Schedule.schedule_date <= today,
            or_(Schedule.end_date.is_(None), Schedule.end_date >= today)
        ).all()

        total = 0
        for schedule in schedules:
            total += len(generate_daily_payments(schedule))

        logger.info(f"Daily payment generation: {total} payment(s) for {len(schedules)} schedule(s)")
        return total

    @TransactionHelper.with_transaction
    def record_payment(self, payment_id: int, data: Dict[str, Any],
                       performed_by: Optional[int] = None) -> Payment:
        """
        Update the amount, type, date or comments of a payment.

        Entering a positive amount on a pre-generated zero payment confirms it
        unless a status is given explicitly.

        Args:
            payment_id: ID of payment
            data: amount, payment_type, payment_date, comments, status
            performed_by: ID of user recording the payment

        Returns:
            The updated Payment
        """
        payment = self.get_payment(payment_id)
        old_values = payment.to_dict()

        amount = parse_amount(data.get('amount'), 'amount')
        status = parse_enum(PaymentStatus, data.get('status'), 'status')
        confirming_generated = (payment.amount == 0 and payment.status == PaymentStatus.PENDING
                                and amount is not None and amount > 0)

        if 'payment_date' in data:
            payment_date = parse_date(data['payment_date'], 'payment_date', required=True)
            if payment_date != payment.payment_date:
                duplicate = Payment.query.filter(Payment.schedule_id == payment.schedule_id,
                                                 Payment.payment_date == payment_date,
                                                 Payment.id != payment.id).first()
                if duplicate:
                    raise ValidationError("A payment already exists for this schedule on that date",
                                          code='DUPLICATE_PAYMENT')
                payment.payment_date = payment_date

        if amount is not None:
            payment.amount = amount
        if data.get('payment_type'):
            payment.payment_type = parse_enum(PaymentType, data['payment_type'], 'payment_type')
        if 'comments' in data:
            payment.comments = data['comments'] or ''

        if status:
            payment.status = status
        elif confirming_generated:
            payment.status = PaymentStatus.CONFIRMED

        payment.is_meeting_target = meets_target(payment.schedule, payment.amount)

        self.audit_service.log_action(
            action='payment_update',
            module='payments',
            entity_id=payment.id,
            old_values=old_values,
            new_values=payment.to_dict(),
            user_id=performed_by
        )
        return payment

    @TransactionHelper.with_transaction
    def confirm_payment(self, payment_id: int, performed_by: Optional[int] = None) -> Payment:
        return self._change_status(payment_id, PaymentStatus.CONFIRMED, performed_by)

    @TransactionHelper.with_transaction
    def reject_payment(self, payment_id: int, performed_by: Optional[int] = None) -> Payment:
        return self._change_status(payment_id, PaymentStatus.REJECTED, performed_by)

    def _change_status(self, payment_id: int, status: PaymentStatus, performed_by: Optional[int]) -> Payment:
        payment = self.get_payment(payment_id)
        old_status = payment.status
        payment.status = status

        self.audit_service.log_action(
            action=f'payment_{status.value}',
            module='payments',
            entity_id=payment.id,
            old_values={'status': old_status.value},
            new_values={'status': status.value},
            user_id=performed_by,
            description=f"Payment {payment.id} status {old_status.value} -> {status.value}"
        )
        logger.info(f"Payment {payment.id} {old_status.value} -> {status.value}")
        return payment
