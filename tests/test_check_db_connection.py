"""Tests for scripts/check_db_connection.py (no database needed)."""
import importlib.util
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from provisioning.credentials import CredentialRecord, PriorRecordIncomplete

SCRIPT = Path(__file__).parent.parent / "scripts" / "check_db_connection.py"

RECORD = CredentialRecord(username="diese_admin", password="pw", port=5432, host="db.internal", name="diesedb")


@pytest.fixture(scope="module")
def script():
    spec = importlib.util.spec_from_file_location("check_db_connection", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_connection_kwargs(script):
    kwargs = script.connection_kwargs(RECORD)

    assert kwargs["host"] == "db.internal"
    assert kwargs["port"] == 5432
    assert kwargs["dbname"] == "diesedb"
    assert kwargs["sslmode"] == "require"


def test_connection_kwargs_strips_legacy_port_suffix(script):
    legacy = CredentialRecord(username="u", password="p", port=5432, host="db.internal:5432", name="d")

    assert script.connection_kwargs(legacy)["host"] == "db.internal"


def test_check_connection_runs_select_1(script):
    cursor = MagicMock()
    cursor.fetchone.return_value = (1,)
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.cursor.return_value.__enter__.return_value = cursor

    with patch.object(script.psycopg, "connect", return_value=conn) as connect:
        script.check_connection(RECORD)

    cursor.execute.assert_called_once_with("SELECT 1")
    assert connect.call_args.kwargs["password"] == "pw"


def test_main_uses_environment_secret(script):
    with patch.object(script, "read_credential_record", return_value=RECORD) as read, \
         patch.object(script, "check_connection") as check:
        code = script.main(["--env", "production"])

    assert code == 0
    read.assert_called_once_with("production/diesedb/credentials-1")
    check.assert_called_once_with(RECORD)


def test_main_incomplete_secret_fails(script):
    with patch.object(script, "read_credential_record", side_effect=PriorRecordIncomplete("missing: DB_HOST")), \
         patch.object(script, "check_connection") as check:
        code = script.main(["--secret-id", "custom/secret"])

    assert code == 1
    check.assert_not_called()


def test_main_connection_failure(script):
    with patch.object(script, "read_credential_record", return_value=RECORD), \
         patch.object(script, "check_connection", side_effect=script.psycopg.OperationalError("refused")):
        assert script.main([]) == 1
