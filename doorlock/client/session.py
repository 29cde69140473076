from dataclasses import dataclass, field
from typing import Any


@dataclass
class ClientSession:
    """Credentials for one dashboard session, passed explicitly to every call."""

    base_url: str
    token: str | None = None
    user: dict[str, Any] | None = field(default=None)

    @property
    def authenticated(self) -> bool:
        return bool(self.token)

    @property
    def role(self) -> str | None:
        if not self.user:
            return None
        return self.user.get("role") or self.user.get("type")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def store(self, token: str, user: dict[str, Any] | None = None) -> None:
        self.token = token
        if user is not None:
            self.user = user

    def clear(self) -> None:
        self.token = None
        self.user = None

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
