#!/usr/bin/env python3
"""
Database Management Commands for FleetDesk

Usage:
    python database_commands.py --help
    python database_commands.py init-db
    python database_commands.py seed-admin --username admin --email admin@example.com
    python database_commands.py change-role --username jdoe --role manager
    python database_commands.py reset-password --username admin
    python database_commands.py complete-expired
    python database_commands.py generate-payments
    python database_commands.py status
"""

import os
import sys
import argparse
import getpass
import logging
from sqlalchemy import text
from app import create_app, db

logger = logging.getLogger(__name__)


def setup_app_context():
    """Setup Flask application context for database operations."""
    # Set a temporary SESSION_SECRET for CLI operations if not set
    if not os.environ.get('SESSION_SECRET'):
        os.environ['SESSION_SECRET'] = 'cli_temp_secret_not_for_production'

    app = create_app()
    return app.app_context()


def _read_password(args):
    password = args.password or os.environ.get('ADMIN_INITIAL_PASSWORD')
    if not password:
        password = getpass.getpass('New password: ')
    return password


def _find_user(username):
    from models import User

    user = User.query.filter_by(username=username).first()
    if not user:
        print(f"❌ User '{username}' not found")
        sys.exit(1)
    return user


def cmd_init_db(args):
    """Create missing tables."""
    with setup_app_context():
        db.create_all()
        print("✅ Database tables created")


def cmd_seed_admin(args):
    """Create the first admin account, or promote an existing one."""
    from models import User, UserRole
    from services import UserService

    with setup_app_context():
        service = UserService()
        existing = User.query.filter_by(username=args.username).first()
        if existing:
            if existing.role != UserRole.ADMIN:
                service.change_role(existing.id, UserRole.ADMIN)
                print(f"✅ User '{args.username}' promoted to admin")
            else:
                print(f"ℹ️ Admin '{args.username}' already exists")
            return

        user = service.create_user({
            'username': args.username,
            'email': args.email,
            'password': _read_password(args),
            'role': UserRole.ADMIN,
            'first_name': 'System',
            'last_name': 'Administrator'
        })
        print(f"✅ Admin '{user.username}' created")


def cmd_change_role(args):
    """Change the role of a user."""
    from services import UserService

    with setup_app_context():
        user = _find_user(args.username)
        UserService().change_role(user.id, args.role)
        print(f"✅ User '{args.username}' is now {args.role}")


def cmd_reset_password(args):
    """Reset the password of a user."""
    from services import UserService

    with setup_app_context():
        user = _find_user(args.username)
        UserService().reset_password(user.id, _read_password(args))
        print(f"✅ Password reset for '{args.username}'")


def cmd_complete_expired(args):
    """Run the schedule lifecycle sweep once."""
    from utils.background_tasks import run_lifecycle_sweep

    with setup_app_context():
        stats = run_lifecycle_sweep()
        print(f"✅ {stats['completed']} schedule(s) completed, {stats['canceled']} canceled, "
              f"{stats['activated']} activated")


def cmd_generate_payments(args):
    """Generate the daily payments of running schedules once."""
    from utils.background_tasks import run_payment_generation

    with setup_app_context():
        stats = run_payment_generation()
        print(f"✅ {stats['payments_created']} payment(s) generated")


def cmd_status(args):
    """Test the database connection and count records."""
    from models import User, Driver, Vehicle, Schedule, Maintenance

    with setup_app_context():
        db.session.execute(text('SELECT 1'))
        print("Connection Status: ✅ HEALTHY")
        for model in (User, Driver, Vehicle, Schedule, Maintenance):
            print(f"{model.__tablename__.title()}: {model.query.count()}")


COMMANDS = {
    'init-db': cmd_init_db,
    'seed-admin': cmd_seed_admin,
    'change-role': cmd_change_role,
    'reset-password': cmd_reset_password,
    'complete-expired': cmd_complete_expired,
    'generate-payments': cmd_generate_payments,
    'status': cmd_status,
}


def build_parser():
    parser = argparse.ArgumentParser(
        description="Database Management Commands for FleetDesk",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('init-db', help='Create database tables')

    seed_parser = subparsers.add_parser('seed-admin', help='Create the first admin account')
    seed_parser.add_argument('--username', default='admin')
    seed_parser.add_argument('--email', default='admin@fleetdesk.local')
    seed_parser.add_argument('--password', help='Defaults to ADMIN_INITIAL_PASSWORD or a prompt')

    role_parser = subparsers.add_parser('change-role', help="Change a user's role")
    role_parser.add_argument('--username', required=True)
    role_parser.add_argument('--role', required=True, choices=['driver', 'manager', 'admin'])

    reset_parser = subparsers.add_parser('reset-password', help="Reset a user's password")
    reset_parser.add_argument('--username', required=True)
    reset_parser.add_argument('--password', help='Defaults to ADMIN_INITIAL_PASSWORD or a prompt')

    subparsers.add_parser('complete-expired', help='Complete expired schedules and activate due ones')
    subparsers.add_parser('generate-payments', help='Generate daily payments of running schedules')
    subparsers.add_parser('status', help='Display database status')
    return parser


def main(argv=None):
    """Main command line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"❌ Unexpected error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
