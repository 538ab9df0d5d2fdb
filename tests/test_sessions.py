import unittest
from datetime import datetime, timedelta, timezone

from luckybet.inc.cookies import EPOCH, Cookie
from luckybet.inc.sessions import SessionStore

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class CookieTests(unittest.TestCase):
    def test_wire_format_round_trip(self):
        cookie = Cookie("session_id", "abc123")
        cookie.set_expires(3600, now=NOW)
        parsed = Cookie.parse(cookie.serialize())
        self.assertEqual(parsed.name, "session_id")
        self.assertEqual(parsed.value, "abc123")
        self.assertEqual(parsed.expires, NOW + timedelta(seconds=3600))

    def test_expiry_is_second_precision(self):
        cookie = Cookie("s", "v")
        cookie.set_expires(10, now=NOW + timedelta(microseconds=750000))
        self.assertEqual(Cookie.parse(str(cookie)).expires, cookie.expires)

    def test_policy_attributes(self):
        cookie = Cookie("s", "v", secure=True)
        cookie.set_expires(60, now=NOW)
        text = cookie.serialize()
        self.assertIn("Path=/", text)
        self.assertIn("SameSite=Lax", text)
        self.assertIn("HttpOnly", text)
        self.assertTrue(text.endswith("Secure"))

    def test_expire_now_sets_epoch(self):
        cookie = Cookie("s", "v")
        cookie.set_expires(60, now=NOW)
        cookie.set_expires()
        self.assertEqual(cookie.expires, EPOCH)
        self.assertTrue(cookie.is_expired(NOW))
        self.assertIn("expires=Thu, 01 Jan 1970 00:00:00 GMT", cookie.serialize())

    def test_malformed_header(self):
        with self.assertRaises(ValueError):
            Cookie.parse("no-equals-sign")

    def test_parse_reads_policy_attributes(self):
        parsed = Cookie.parse("sid=xyz; expires=Wed, 01 May 2024 13:00:00 GMT; Path=/; SameSite=Strict; Secure; HttpOnly")
        self.assertEqual(parsed.value, "xyz")
        self.assertEqual(parsed.expires, NOW + timedelta(hours=1))
        self.assertEqual(parsed.same_site, "Strict")
        self.assertTrue(parsed.secure)


class SessionStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = SessionStore(ttl_seconds=600)

    def test_create_and_resolve(self):
        session = self.store.create(user_id=7, now=NOW)
        self.assertEqual(session.cookie.value, session.id)
        self.assertEqual(session.expires, NOW + timedelta(seconds=600))
        resolved = self.store.resolve(session.id, now=NOW)
        self.assertIs(resolved, session)
        self.assertTrue(resolved.authenticated)

    def test_ids_are_unique(self):
        ids = {self.store.create(now=NOW).id for _ in range(50)}
        self.assertEqual(len(ids), 50)

    def test_unknown_and_empty_ids(self):
        self.assertIsNone(self.store.resolve("nope", now=NOW))
        self.assertIsNone(self.store.resolve(None, now=NOW))
        self.assertIsNone(self.store.resolve("", now=NOW))

    def test_expired_session_is_absent(self):
        session = self.store.create(user_id=1, now=NOW)
        later = NOW + timedelta(seconds=600)
        self.assertIsNone(self.store.resolve(session.id, now=later))
        self.assertNotIn(session.id, self.store)

    def test_refresh_slides_expiry(self):
        session = self.store.create(user_id=1, now=NOW)
        self.store.refresh(session, now=NOW + timedelta(seconds=500))
        self.assertEqual(session.expires, NOW + timedelta(seconds=1100))
        self.assertIsNotNone(self.store.resolve(session.id, now=NOW + timedelta(seconds=900)))

    def test_refresh_with_explicit_extension(self):
        session = self.store.create(user_id=1, now=NOW)
        self.store.refresh(session, extension=30, now=NOW)
        self.assertEqual(session.expires, NOW + timedelta(seconds=30))

    def test_destroy_clears_data_and_expires_cookie(self):
        session = self.store.create(user_id=3, now=NOW)
        session.data.round = object()
        self.store.destroy(session)
        self.assertIsNone(session.user_id)
        self.assertIsNone(session.data.round)
        self.assertEqual(session.cookie.expires, EPOCH)
        self.assertIsNone(self.store.resolve(session.id, now=NOW))

    def test_sweep_removes_only_expired(self):
        old = self.store.create(user_id=1, now=NOW - timedelta(seconds=700))
        fresh = self.store.create(user_id=2, now=NOW)
        self.assertEqual(self.store.sweep(now=NOW), 1)
        self.assertNotIn(old.id, self.store)
        self.assertIn(fresh.id, self.store)
        self.assertEqual(len(self.store), 1)

    def test_store_cookie_settings(self):
        store = SessionStore(cookie_name="sid", secure_cookies=True, same_site="Strict")
        session = store.create(now=NOW)
        text = session.cookie.serialize()
        self.assertTrue(text.startswith(f"sid={session.id};"))
        self.assertIn("SameSite=Strict", text)
        self.assertIn("Secure", text)
        self.assertFalse(session.authenticated)


if __name__ == "__main__":
    unittest.main()
