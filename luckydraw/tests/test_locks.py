import threading
from unittest import mock

from django.db.utils import OperationalError
from django.test import SimpleTestCase

from luckydraw.locks import DrawLockError, reward_draw_lock, reward_store_lock


def mysql_connection(row=(1,)):
    conn = mock.MagicMock(vendor="mysql")
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.fetchone.return_value = row
    return conn, cursor


class NamedLockTests(SimpleTestCase):
    def test_mysql_takes_and_releases_named_lock(self):
        conn, cursor = mysql_connection()

        with mock.patch("luckydraw.locks.connection", conn):
            with reward_draw_lock(timeout=2.5):
                pass

        statements = [call.args for call in cursor.execute.call_args_list]
        self.assertEqual(
            statements,
            [
                ("SELECT GET_LOCK(%s, %s)", ["luckydraw:draw", 3]),
                ("SELECT RELEASE_LOCK(%s)", ["luckydraw:draw"]),
            ],
        )

    def test_mysql_lock_timeout_is_busy(self):
        conn, cursor = mysql_connection(row=(0,))

        with mock.patch("luckydraw.locks.connection", conn):
            with self.assertRaisesMessage(DrawLockError, "Reward store is busy"):
                with reward_store_lock(timeout=1):
                    pass

        self.assertEqual(cursor.execute.call_count, 1)

    def test_mysql_error_becomes_lock_error(self):
        conn, cursor = mysql_connection()
        cursor.execute.side_effect = OperationalError("gone away")

        with mock.patch("luckydraw.locks.connection", conn):
            with self.assertRaises(DrawLockError):
                with reward_draw_lock():
                    pass

    def test_sqlite_falls_back_to_process_lock(self):
        holding = threading.Event()
        release = threading.Event()

        def hold():
            with reward_draw_lock(timeout=1):
                holding.set()
                release.wait(5)

        worker = threading.Thread(target=hold)
        worker.start()
        try:
            self.assertTrue(holding.wait(5))
            with self.assertRaisesMessage(DrawLockError, "Draw system is busy"):
                with reward_draw_lock(timeout=0.01):
                    pass
        finally:
            release.set()
            worker.join(5)

        with reward_draw_lock(timeout=0.01):
            pass
