"""
Unit tests for the database command line tools
"""

import pytest

from database_commands import build_parser, main


class TestDatabaseCommands:
    """Each command runs against its own in-memory database"""

    def test_no_command_prints_help(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_change_role_validates_choice(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['change-role', '--username', 'jdoe', '--role', 'owner'])

    def test_seed_admin(self, capsys):
        main(['seed-admin', '--password', 'longenough'])
        assert "Admin 'admin' created" in capsys.readouterr().out

    def test_seed_admin_weak_password(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['seed-admin', '--password', 'short'])
        assert exc_info.value.code == 1
        assert 'at least 8 characters' in capsys.readouterr().out

    def test_status(self, capsys):
        main(['status'])
        output = capsys.readouterr().out
        assert 'HEALTHY' in output
        assert 'Schedules: 0' in output

    def test_complete_expired_on_empty_database(self, capsys):
        main(['complete-expired'])
        assert '0 schedule(s) completed, 0 canceled, 0 activated' in capsys.readouterr().out
