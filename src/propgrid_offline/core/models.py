from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Optional

RequestMode = Literal["navigate", "same-origin", "cors", "no-cors"]


@dataclass(frozen=True, slots=True)
class Request:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    mode: RequestMode = "cors"

    @classmethod
    def get(cls, url: str, *, mode: RequestMode = "cors") -> Request:
        return cls(url=url, mode=mode)

    @classmethod
    def post_json(cls, url: str, payload: Any) -> Request:
        return cls(
            url=url,
            method="POST",
            headers={"Content-Type": "application/json"},
            body=json.dumps(payload).encode("utf-8"),
        )


@dataclass(slots=True)
class Response:
    status: int = 200
    reason: str = "OK"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status <= 299

    @property
    def content_type(self) -> str:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return ""

    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body)

    def clone(self) -> Response:
        return replace(self, headers=dict(self.headers))

    @classmethod
    def synthetic(
        cls,
        body: str,
        *,
        status: int = 200,
        reason: str = "OK",
        content_type: Optional[str] = None,
    ) -> Response:
        headers = {"Content-Type": content_type} if content_type else {}
        return cls(status=status, reason=reason, headers=headers, body=body.encode("utf-8"))
