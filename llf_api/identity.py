import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import jwt
from passlib.hash import pbkdf2_sha256

from llf_api.engine.collaborators import AuthSession, IdentityProvider
from llf_api.engine.entities import utcnow
from llf_api.engine.errors import NotFound, Unauthenticated, ValidationError
from llf_api.engine.repository import Repository, where

logger = logging.getLogger(__name__)

CREDENTIALS = "credentials"
SESSIONS = "sessions"
PASSWORD_RESETS = "password_resets"

SESSION_TOKEN = "session"
RESET_TOKEN = "password_reset"
MIN_PASSWORD_LENGTH = 6


def _normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


class LocalIdentityProvider(IdentityProvider):
    """Credentials and sessions kept in the application repository, tokens signed with HS256."""

    def __init__(
        self,
        *,
        repository: Repository,
        secret: str,
        issuer: str = "llf-api",
        audience: str = "llf",
        session_ttl_seconds: int = 3600,
        reset_ttl_seconds: int = 1800,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret:
            raise ValueError("secret is required")
        self.repository = repository
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.session_ttl_seconds = session_ttl_seconds
        self.reset_ttl_seconds = reset_ttl_seconds
        self.clock = clock

    def _credential_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        rows = self.repository.query(CREDENTIALS, [where("email", "eq", _normalize_email(email))])
        return rows[0] if rows else None

    def _encode(self, *, subject: str, jti: str, purpose: str, issued_at: datetime, expires_at: datetime) -> str:
        payload = {
            "iss": self.issuer,
            "aud": self.audience,
            "sub": subject,
            "jti": jti,
            "typ": purpose,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def _decode(self, token: str, purpose: str, *, verify_exp: bool = True) -> Dict[str, Any]:
        if not token:
            raise Unauthenticated("Missing bearer token")
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                issuer=self.issuer,
                audience=self.audience,
                options={"verify_exp": verify_exp},
            )
        except jwt.PyJWTError as exc:
            raise Unauthenticated(f"Invalid token: {exc}") from exc
        if claims.get("typ") != purpose or not claims.get("jti") or not claims.get("sub"):
            raise Unauthenticated("Invalid token: wrong token type")
        return claims

    def create_account(self, email: str, password: str) -> str:
        email = _normalize_email(email)
        _check_password(password)
        if self._credential_by_email(email) is not None:
            raise ValidationError("An account already exists for this email")
        user_id = str(uuid.uuid4())
        self.repository.put(
            CREDENTIALS,
            user_id,
            {
                "email": email,
                "password_hash": pbkdf2_sha256.hash(password),
                "created_at": self.clock(),
            },
        )
        return user_id

    def delete_account(self, user_id: str) -> None:
        for session in self.repository.query(SESSIONS, [where("user_id", "eq", user_id)]):
            self.repository.delete(SESSIONS, session["id"])
        self.repository.delete(CREDENTIALS, user_id)

    def authenticate(self, email: str, password: str) -> AuthSession:
        credential = self._credential_by_email(email)
        if credential is None or not pbkdf2_sha256.verify(password or "", credential["password_hash"]):
            logger.info("Failed sign-in for %s", _normalize_email(email))
            raise Unauthenticated("Invalid credentials")
        issued_at = self.clock()
        expires_at = issued_at + timedelta(seconds=self.session_ttl_seconds)
        jti = str(uuid.uuid4())
        self.repository.put(
            SESSIONS,
            jti,
            {"user_id": credential["id"], "issued_at": issued_at, "expires_at": expires_at},
        )
        token = self._encode(
            subject=credential["id"], jti=jti, purpose=SESSION_TOKEN, issued_at=issued_at, expires_at=expires_at
        )
        return AuthSession(user_id=credential["id"], token=token, session_id=jti, expires_at=expires_at)

    def current_session(self, token: Optional[str]) -> AuthSession:
        claims = self._decode(token or "", SESSION_TOKEN)
        session = self.repository.get(SESSIONS, claims["jti"])
        if session is None or session.get("user_id") != claims["sub"]:
            raise Unauthenticated("Session has ended")
        if session["expires_at"] <= self.clock():
            raise Unauthenticated("Session has expired")
        return AuthSession(
            user_id=claims["sub"], token=token, session_id=claims["jti"], expires_at=session["expires_at"]
        )

    def sign_out(self, token: str) -> None:
        claims = self._decode(token, SESSION_TOKEN, verify_exp=False)
        self.repository.delete(SESSIONS, claims["jti"])

    def issue_password_reset(self, email: str) -> str:
        credential = self._credential_by_email(email)
        if credential is None:
            raise NotFound("No account is registered for this email")
        issued_at = self.clock()
        expires_at = issued_at + timedelta(seconds=self.reset_ttl_seconds)
        jti = str(uuid.uuid4())
        self.repository.put(PASSWORD_RESETS, jti, {"user_id": credential["id"], "expires_at": expires_at})
        return self._encode(
            subject=credential["id"], jti=jti, purpose=RESET_TOKEN, issued_at=issued_at, expires_at=expires_at
        )

    def confirm_password_reset(self, reset_token: str, new_password: str) -> None:
        claims = self._decode(reset_token, RESET_TOKEN)
        reset = self.repository.get(PASSWORD_RESETS, claims["jti"])
        if reset is None or reset.get("user_id") != claims["sub"]:
            raise Unauthenticated("Reset token has already been used")
        _check_password(new_password)
        credential = self.repository.get(CREDENTIALS, claims["sub"])
        if credential is None:
            raise NotFound("Account no longer exists")
        credential["password_hash"] = pbkdf2_sha256.hash(new_password)
        self.repository.put(CREDENTIALS, credential["id"], credential)
        self.repository.delete(PASSWORD_RESETS, claims["jti"])
        for session in self.repository.query(SESSIONS, [where("user_id", "eq", claims["sub"])]):
            self.repository.delete(SESSIONS, session["id"])
        logger.info("Password reset completed for %s", credential["email"])
