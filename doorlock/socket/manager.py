from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    user_id: str
    username: str
    role: str


class SocketState:
    def __init__(self):
        self.sid_principal: dict[str, Principal] = {}

    def bind(self, sid: str, principal: Principal):
        self.sid_principal[sid] = principal

    def unbind_sid(self, sid: str) -> Principal | None:
        return self.sid_principal.pop(sid, None)

    def get(self, sid: str) -> Principal | None:
        return self.sid_principal.get(sid)

    def counts(self) -> dict[str, int]:
        totals = {"admin": 0, "guest": 0}
        for principal in self.sid_principal.values():
            totals[principal.role] = totals.get(principal.role, 0) + 1
        return totals


socket_state = SocketState()
