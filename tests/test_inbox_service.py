from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from staffcheck.errors import ApiError
from staffcheck.models import Notification, NotificationRecipient, NotificationType
from staffcheck.services.notifications import list_inbox, mark_all_read, mark_read, unread_count

READ_AT = datetime(2026, 3, 2, 10, 15, tzinfo=timezone.utc)


class _ScalarRows:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return self._rows


class _FakeInboxDB:
    """Filters recipient rows by the user, notification and unread conditions of each query."""

    def __init__(self, rows: list[NotificationRecipient]) -> None:
        self.rows = rows
        self.commits = 0

    def _matching(self, statement) -> list[NotificationRecipient]:  # type: ignore[no-untyped-def]
        params = statement.compile().params
        user_id = next(value for key, value in params.items() if key.startswith("user_id"))
        notification_id = next(
            (value for key, value in params.items() if key.startswith("notification_id")),
            None,
        )
        unread_only = "is_read" in str(statement.whereclause)
        return [
            row
            for row in self.rows
            if row.user_id == user_id
            and (notification_id is None or row.notification_id == notification_id)
            and (not unread_only or not row.is_read)
        ]

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        matches = self._matching(statement)
        if "count(" in str(statement):
            return len(matches)
        return matches[0] if matches else None

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        return _ScalarRows(self._matching(statement))

    def commit(self) -> None:
        self.commits += 1


def _recipient(row_id: int, *, user_id: int, notification_id: int, is_read: bool = False) -> NotificationRecipient:
    row = NotificationRecipient(
        id=row_id,
        user_id=user_id,
        notification_id=notification_id,
        is_read=is_read,
        read_at=READ_AT if is_read else None,
    )
    row.notification = Notification(
        id=notification_id,
        title=f"Notice {notification_id}",
        message="Inventory count at 17:00.",
        type=NotificationType.WARNING,
        is_broadcast=notification_id == 2,
        created_at=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
    )
    return row


class InboxTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rows = [
            _recipient(1, user_id=5, notification_id=1),
            _recipient(2, user_id=5, notification_id=2),
            _recipient(3, user_id=5, notification_id=3, is_read=True),
            _recipient(4, user_id=6, notification_id=1),
        ]
        self.fake_db = _FakeInboxDB(self.rows)

    def test_unread_count_is_per_user(self) -> None:
        self.assertEqual(unread_count(self.fake_db, user_id=5), 2)  # type: ignore[arg-type]
        self.assertEqual(unread_count(self.fake_db, user_id=6), 1)  # type: ignore[arg-type]
        self.assertEqual(unread_count(self.fake_db, user_id=7), 0)  # type: ignore[arg-type]

    def test_inbox_lists_read_state(self) -> None:
        items = list_inbox(self.fake_db, user_id=5)  # type: ignore[arg-type]

        self.assertEqual(len(items), 3)
        read_item = next(item for item in items if item.notification_id == 3)
        self.assertTrue(read_item.is_read)
        self.assertEqual(read_item.read_at, READ_AT)
        self.assertTrue(next(item for item in items if item.notification_id == 2).is_broadcast)

    def test_inbox_unread_only(self) -> None:
        items = list_inbox(self.fake_db, user_id=5, unread_only=True)  # type: ignore[arg-type]
        self.assertEqual(sorted(item.notification_id for item in items), [1, 2])

    def test_mark_read_sets_timestamp_once(self) -> None:
        with patch("staffcheck.services.notifications._utcnow", return_value=READ_AT):
            changed = mark_read(self.fake_db, user_id=5, notification_id=1)  # type: ignore[arg-type]

        self.assertEqual(changed, 1)
        self.assertTrue(self.rows[0].is_read)
        self.assertEqual(self.rows[0].read_at, READ_AT)
        self.assertEqual(self.fake_db.commits, 1)

        self.assertEqual(mark_read(self.fake_db, user_id=5, notification_id=1), 0)  # type: ignore[arg-type]
        self.assertEqual(self.fake_db.commits, 1)

    def test_mark_read_for_other_users_notification_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            mark_read(self.fake_db, user_id=6, notification_id=2)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 404)

    def test_mark_all_read_only_touches_own_unread_rows(self) -> None:
        changed = mark_all_read(self.fake_db, user_id=5)  # type: ignore[arg-type]

        self.assertEqual(changed, 2)
        self.assertTrue(all(row.is_read for row in self.rows[:3]))
        self.assertFalse(self.rows[3].is_read)
        self.assertEqual(self.rows[2].read_at, READ_AT)
        self.assertEqual(self.fake_db.commits, 1)

    def test_mark_all_read_without_unread_rows_skips_commit(self) -> None:
        self.assertEqual(mark_all_read(self.fake_db, user_id=7), 0)  # type: ignore[arg-type]
        self.assertEqual(self.fake_db.commits, 0)


if __name__ == "__main__":
    unittest.main()
