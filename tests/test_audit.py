from __future__ import annotations

import unittest

from starlette.requests import Request

from staffcheck.audit import AuditContext, audit_user_action, log_audit
from staffcheck.models import AuditActorType, AuditLog, Profile, UserRole


def _request(headers: dict[str, str], *, request_id: str | None = "req-42") -> Request:
    request = Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/api/attendance/check-in",
            "query_string": b"",
            "headers": [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in headers.items()],
            "client": ("198.51.100.4", 51000),
        }
    )
    if request_id is not None:
        request.state.request_id = request_id
    return request


class _FakeAuditDB:
    def __init__(self, *, fail_commit: bool = False):
        self.fail_commit = fail_commit
        self.rows: list[object] = []
        self.rolled_back = False

    def add(self, obj: object) -> None:
        self.rows.append(obj)

    def commit(self) -> None:
        if self.fail_commit:
            raise RuntimeError("connection lost")

    def rollback(self) -> None:
        self.rolled_back = True


class AuditContextTests(unittest.TestCase):
    def test_context_prefers_first_forwarded_address(self) -> None:
        context = AuditContext.from_request(
            _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.2", "User-Agent": "kiosk/2.1"})
        )

        self.assertEqual(context.ip, "203.0.113.7")
        self.assertEqual(context.user_agent, "kiosk/2.1")
        self.assertEqual(context.request_id, "req-42")

    def test_context_falls_back_to_socket_peer(self) -> None:
        context = AuditContext.from_request(_request({}, request_id=None))

        self.assertEqual(context.ip, "198.51.100.4")
        self.assertIsNone(context.user_agent)
        self.assertIsNone(context.request_id)


class LogAuditTests(unittest.TestCase):
    def test_row_carries_context_and_string_entity_id(self) -> None:
        db = _FakeAuditDB()

        log_audit(
            db,  # type: ignore[arg-type]
            actor_type=AuditActorType.SYSTEM,
            actor_id="cron",
            action="NOTIFICATIONS_CLEANED",
            success=True,
            entity_type="notification",
            entity_id=12,
            details={"deleted": 4},
            context=AuditContext(ip="10.1.1.1", user_agent="curl/8", request_id="req-1"),
        )

        self.assertEqual(len(db.rows), 1)
        row = db.rows[0]
        self.assertIsInstance(row, AuditLog)
        self.assertEqual(row.entity_id, "12")
        self.assertEqual(row.ip, "10.1.1.1")
        self.assertEqual(row.user_agent, "curl/8")
        self.assertEqual(row.details, {"deleted": 4})

    def test_failed_write_rolls_back_and_logs_entity(self) -> None:
        db = _FakeAuditDB(fail_commit=True)

        with self.assertLogs("staffcheck.audit", level="ERROR") as captured:
            log_audit(
                db,  # type: ignore[arg-type]
                actor_type=AuditActorType.USER,
                actor_id="5",
                action="CHECKLIST_COMPLETED",
                success=True,
                entity_type="job_checklist",
                entity_id=77,
            )

        self.assertTrue(db.rolled_back)
        record = captured.records[0]
        self.assertEqual(record.getMessage(), "audit_log_write_failed")
        self.assertEqual(record.entity_type, "job_checklist")
        self.assertEqual(record.entity_id, "77")
        self.assertIsNone(record.request_id)

    def test_user_action_uses_request_context(self) -> None:
        db = _FakeAuditDB()
        actor = Profile(id=9, email="m@example.com", full_name="Manager", role=UserRole.MANAGER, is_active=True)

        audit_user_action(
            db,  # type: ignore[arg-type]
            _request({"User-Agent": "browser"}),
            actor=actor,
            action="SCHEDULE_CREATED",
            entity_type="employee_schedule",
            entity_id=3,
        )

        row = db.rows[0]
        self.assertEqual(row.actor_type, AuditActorType.USER)
        self.assertEqual(row.actor_id, "9")
        self.assertEqual(row.ip, "198.51.100.4")
        self.assertEqual(row.user_agent, "browser")
        self.assertTrue(row.success)


if __name__ == "__main__":
    unittest.main()
