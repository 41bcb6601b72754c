from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import re

from cafepos.domain.errors import AuthorizationError
from cafepos.domain.models import User

ROLES = {"admin", "cashier"}


@dataclass(frozen=True)
class LoginPolicy:
    min_password_length: int = 8
    max_failed_attempts: int = 5
    lockout_seconds: int = 60


def _validate_password_strength(secret: str, *, min_len: int) -> None:
    if len(secret) < min_len:
        raise AuthorizationError(f"Password must have at least {min_len} characters.")
    if not re.search(r"[A-Za-z]", secret):
        raise AuthorizationError("Password must include at least one letter.")
    if not re.search(r"\d", secret):
        raise AuthorizationError("Password must include at least one number.")


PERMISSIONS: dict[str, set[str]] = {
    "checkout": {"admin", "cashier"},
    "view_catalog": {"admin", "cashier"},
    "manage_inventory": {"admin"},
    "view_reports": {"admin"},
    "ai_insights": {"admin"},
    "manage_users": {"admin"},
}


class AuthService:
    def __init__(self, repo, policy: LoginPolicy | None = None):
        self.repo = repo
        self.policy = policy or LoginPolicy()

    def list_users(self) -> list[User]:
        return self.repo.list_users()

    def login(self, email: str, password: str) -> User:
        email_clean = (email or "").strip().lower()
        if not email_clean:
            raise AuthorizationError("Email is required.")

        state = self.repo.get_user_security_state(email_clean)
        if state:
            _attempts, locked_until = state
            if locked_until:
                until = datetime.fromisoformat(locked_until)
                now = datetime.now(timezone.utc).replace(tzinfo=None)
                if now < until:
                    remaining = int((until - now).total_seconds())
                    raise AuthorizationError(f"User is temporarily locked. Retry in {remaining}s.")

        user = self.repo.authenticate_user(email_clean, (password or "").strip())
        if not user:
            _attempts, locked_until = self.repo.record_login_failure(
                email_clean,
                self.policy.max_failed_attempts,
                self.policy.lockout_seconds,
            )
            if locked_until is not None:
                raise AuthorizationError("Too many failed attempts. User is temporarily locked.")
            raise AuthorizationError("Invalid credentials.")

        self.repo.clear_login_guard(user.id)
        return user

    def can(self, user: User | None, action: str) -> bool:
        if user is None:
            return False
        allowed_roles = PERMISSIONS.get(action)
        if not allowed_roles:
            return False
        return user.role in allowed_roles

    def require_action(self, user: User | None, action: str) -> None:
        if user is None:
            raise AuthorizationError("Login required.")
        if not self.can(user, action):
            raise AuthorizationError(f"Role '{user.role}' is not allowed to perform '{action}'.")

    def create_user(self, actor: User, email: str, password: str, role: str) -> int:
        self.require_action(actor, "manage_users")

        email_clean = (email or "").strip().lower()
        secret = (password or "").strip()
        target_role = (role or "").strip().lower()
        if not email_clean or "@" not in email_clean:
            raise AuthorizationError("A valid email is required.")
        _validate_password_strength(secret, min_len=self.policy.min_password_length)
        if target_role not in ROLES:
            raise AuthorizationError("Role must be admin or cashier.")

        try:
            return self.repo.create_user(email_clean, secret, target_role)
        except Exception as exc:
            raise AuthorizationError(f"Could not create user '{email_clean}': {exc}") from exc
