"""Password hashing, session tokens and sign-in rate limiting."""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from starlette.requests import HTTPConnection

if TYPE_CHECKING:
    from kanbanflow.backend.database import Database
    from kanbanflow.backend.task_board import TaskBoard

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260_000
MIN_PASSWORD_LENGTH = 8
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_password(password: str, *, salt: str | None = None,
                  iterations: int = PBKDF2_ITERATIONS) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$", 3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


class SignInLocked(Exception):
    """Raised when a client IP is locked out after repeated failed sign-ins."""


class SessionManager:
    """Issues and validates session tokens stored (hashed) in the ``sessions`` table.

    Parameters
    ----------
    db:
        An initialised :class:`Database`.
    task_board:
        Used to create and look up users.
    cookie_name:
        Name of the session cookie read by :meth:`token_from_request`.
    ttl_hours:
        Lifetime of a new session.
    rate_limit_attempts:
        Failed sign-ins within ``rate_limit_window`` seconds before the
        client IP is locked out. ``0`` disables rate limiting.
    rate_limit_window:
        Sliding window (seconds) in which failures are counted.
    rate_limit_lockout:
        Lockout duration in seconds.
    password_iterations:
        PBKDF2 work factor for new password hashes.
    """

    @staticmethod
    def _hash_token(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def __init__(
        self,
        db: Database,
        task_board: TaskBoard,
        *,
        cookie_name: str = "kanbanflow_session",
        ttl_hours: int = 24 * 7,
        rate_limit_attempts: int = 10,
        rate_limit_window: int = 60,
        rate_limit_lockout: int = 300,
        password_iterations: int = PBKDF2_ITERATIONS,
    ) -> None:
        self._db = db
        self._board = task_board
        self.password_iterations = password_iterations
        self.cookie_name = cookie_name
        self.ttl = timedelta(hours=ttl_hours)
        self.rate_limit_attempts = rate_limit_attempts
        self.rate_limit_window = rate_limit_window
        self.rate_limit_lockout = rate_limit_lockout

        # {ip: [monotonic timestamp, ...]}
        self._failed_attempts: dict[str, list[float]] = {}
        # {ip: lockout expiry}
        self._lockouts: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    def is_locked_out(self, ip: str, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        expiry = self._lockouts.get(ip)
        if expiry is None:
            return False
        if now < expiry:
            return True
        del self._lockouts[ip]
        return False

    def _record_failure(self, ip: str, now: float) -> None:
        cutoff = now - self.rate_limit_window
        attempts = [t for t in self._failed_attempts.get(ip, []) if t > cutoff]
        attempts.append(now)
        self._failed_attempts[ip] = attempts

        if len(attempts) >= self.rate_limit_attempts:
            self._lockouts[ip] = now + self.rate_limit_lockout
            self._failed_attempts.pop(ip, None)
            logger.warning(
                "Sign-in rate limit triggered for %s, locked out for %ds",
                ip, self.rate_limit_lockout,
            )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def signup(self, name: str, email: str, password: str,
                     image: str | None = None) -> dict:
        """Create a user account; raises ``ValueError`` on invalid input."""
        if not _EMAIL_RE.match(email.strip()):
            raise ValueError(f"Invalid email address: {email!r}")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        return await self._board.create_user(
            name, email, hash_password(password, iterations=self.password_iterations), image,
        )

    async def signin(self, email: str, password: str,
                     client_ip: str = "unknown") -> tuple[dict, str] | None:
        """Check credentials and open a session.

        Returns ``(user, token)`` or ``None`` for bad credentials.

        Raises
        ------
        SignInLocked
            If *client_ip* is currently locked out.
        """
        now = time.monotonic()
        limited = self.rate_limit_attempts > 0
        if limited and self.is_locked_out(client_ip, now):
            raise SignInLocked(f"Too many failed sign-in attempts from {client_ip}")

        row = await self._board.get_user_by_email(email)
        if row is None or not verify_password(password, row["password_hash"]):
            if limited:
                self._record_failure(client_ip, now)
            logger.info("Failed sign-in for %s from %s", email, client_ip)
            return None

        self._failed_attempts.pop(client_ip, None)
        token = await self.create_session(row["id"])
        user = {k: row[k] for k in ("id", "name", "email", "image")}
        return user, token

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        await self._db.execute(
            "INSERT INTO sessions (token_hash, user_id, created_at, expires_at) "
            "VALUES (?, ?, ?, ?)",
            (self._hash_token(token), user_id, now.isoformat(), (now + self.ttl).isoformat()),
        )
        return token

    async def resolve(self, token: str | None) -> dict | None:
        """Return the user owning *token*, or ``None`` if unknown or expired."""
        if not token:
            return None
        token_hash = self._hash_token(token)
        row = await self._db.execute_fetchone(
            "SELECT s.expires_at, u.id, u.name, u.email, u.image FROM sessions s "
            "JOIN users u ON u.id = s.user_id WHERE s.token_hash = ?",
            (token_hash,),
        )
        if row is None:
            return None
        if datetime.fromisoformat(row.pop("expires_at")) <= datetime.now(timezone.utc):
            await self._db.execute("DELETE FROM sessions WHERE token_hash = ?", (token_hash,))
            return None
        return row

    async def revoke(self, token: str | None) -> None:
        if token:
            await self._db.execute(
                "DELETE FROM sessions WHERE token_hash = ?", (self._hash_token(token),)
            )

    async def purge_expired(self) -> int:
        rows = await self._db.execute_returning(
            "DELETE FROM sessions WHERE expires_at <= ? RETURNING token_hash",
            (datetime.now(timezone.utc).isoformat(),),
        )
        if rows:
            logger.info("Purged %d expired sessions", len(rows))
        return len(rows)

    def token_from_request(self, request: HTTPConnection) -> str | None:
        """Read the session token from the cookie or an ``Authorization: Bearer`` header.

        Works for both HTTP requests and WebSocket handshakes.
        """
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header[7:].strip() or None
        return request.cookies.get(self.cookie_name)

    async def current_user(self, request: HTTPConnection) -> dict | None:
        return await self.resolve(self.token_from_request(request))
