from datetime import timedelta
from unittest import TestCase

import jwt

from llf_api.engine import InMemoryRepository
from llf_api.engine.entities import utcnow
from llf_api.engine.errors import NotFound, Unauthenticated, ValidationError
from llf_api.identity import CREDENTIALS, SESSIONS, LocalIdentityProvider
from llf_api.tests.support import TEST_SECRET


class LocalIdentityProviderTests(TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        self.identity = LocalIdentityProvider(
            repository=self.repo, secret=TEST_SECRET, issuer="llf-test", audience="llf-clients"
        )
        self.user_id = self.identity.create_account("Asha@Plant.test", "s3cret!")

    def test_passwords_are_hashed(self):
        credential = self.repo.get(CREDENTIALS, self.user_id)
        self.assertEqual(credential["email"], "asha@plant.test")
        self.assertNotIn("s3cret!", credential["password_hash"])
        self.assertTrue(credential["password_hash"].startswith("$pbkdf2-sha256$"))

    def test_session_token_claims(self):
        session = self.identity.authenticate("asha@plant.test", "s3cret!")
        claims = jwt.decode(session.token, TEST_SECRET, algorithms=["HS256"], audience="llf-clients")
        self.assertEqual(claims["iss"], "llf-test")
        self.assertEqual(claims["sub"], self.user_id)
        self.assertEqual(claims["jti"], session.session_id)
        self.assertEqual(claims["typ"], "session")
        self.assertEqual(claims["exp"] - claims["iat"], 3600)

    def test_unknown_email_and_wrong_password_look_the_same(self):
        for email, password in (("nobody@plant.test", "s3cret!"), ("asha@plant.test", "nope-nope")):
            with self.assertRaises(Unauthenticated) as ctx:
                self.identity.authenticate(email, password)
            self.assertEqual(ctx.exception.message, "Invalid credentials")

    def test_tampered_or_foreign_tokens_are_rejected(self):
        session = self.identity.authenticate("asha@plant.test", "s3cret!")
        foreign = jwt.encode(
            {"iss": "llf-test", "aud": "llf-clients", "sub": self.user_id, "jti": session.session_id, "typ": "session"},
            "another-secret-that-is-long-enough-000",
            algorithm="HS256",
        )
        for token in ("", "not-a-jwt", foreign):
            with self.assertRaises(Unauthenticated):
                self.identity.current_session(token)

    def test_reset_token_is_not_a_session_token(self):
        reset_token = self.identity.issue_password_reset("asha@plant.test")
        with self.assertRaises(Unauthenticated):
            self.identity.current_session(reset_token)

    def test_expired_session_record_is_rejected(self):
        session = self.identity.authenticate("asha@plant.test", "s3cret!")
        record = self.repo.get(SESSIONS, session.session_id)
        record["expires_at"] = utcnow() - timedelta(seconds=1)
        self.repo.put(SESSIONS, session.session_id, record)
        with self.assertRaises(Unauthenticated):
            self.identity.current_session(session.token)

    def test_password_rules_and_duplicates(self):
        with self.assertRaises(ValidationError):
            self.identity.create_account("new@plant.test", "12345")
        with self.assertRaises(ValidationError):
            self.identity.create_account("asha@plant.test", "s3cret!")

    def test_reset_requires_known_email(self):
        with self.assertRaises(NotFound):
            self.identity.issue_password_reset("ghost@plant.test")

    def test_delete_account_revokes_sessions(self):
        session = self.identity.authenticate("asha@plant.test", "s3cret!")
        self.identity.delete_account(self.user_id)
        self.assertIsNone(self.repo.get(CREDENTIALS, self.user_id))
        with self.assertRaises(Unauthenticated):
            self.identity.current_session(session.token)
