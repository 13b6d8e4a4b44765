from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class Request:
    method: str
    target: str
    path: str
    version: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class ResponseSpec:
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @classmethod
    def text(cls, status: int, reason: str, message: str) -> "ResponseSpec":
        return cls(status, reason, headers={"Content-Type": "text/plain"}, body=message.encode("utf-8"))
