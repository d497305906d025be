import json

from infrastructure.logging.audit import AuditLogger


def test_audit_records_are_json_lines(tmp_path):
    path = tmp_path / "logs" / "audit.log"
    audit = AuditLogger(str(path), logger_name="farmhub.audit.test")
    try:
        audit.log_event(
            actor="dispatcher",
            action="setPosition",
            resource="device:valve_1",
            outcome="delivered",
            params={"openPercentage": 40.0},
        )
    finally:
        audit.close()

    (line,) = path.read_text(encoding="utf-8").splitlines()
    record = json.loads(line.split(" | ", 2)[2])
    assert record["action"] == "setPosition"
    assert record["outcome"] == "delivered"
    assert record["meta"]["params"] == {"openPercentage": 40.0}


def test_close_removes_handlers(tmp_path):
    audit = AuditLogger(str(tmp_path / "audit.log"), logger_name="farmhub.audit.close")
    assert audit.logger.handlers
    audit.close()
    assert audit.logger.handlers == []
