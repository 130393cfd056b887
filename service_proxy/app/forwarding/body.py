"""
Request body variant carried from the HTTP boundary to the backend call.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class BodyKind(str, Enum):
    """How the inbound body reached the forwarder."""
    EMPTY = "empty"
    RAW = "raw"
    JSON = "json"


@dataclass(frozen=True)
class ForwardBody:
    """Tagged body variant, decided once at the request boundary."""
    kind: BodyKind
    raw: bytes = b""
    document: Any = None

    @classmethod
    def empty(cls) -> "ForwardBody":
        return cls(kind=BodyKind.EMPTY)

    @classmethod
    def from_bytes(cls, data: Optional[bytes]) -> "ForwardBody":
        if not data:
            return cls.empty()
        return cls(kind=BodyKind.RAW, raw=bytes(data))

    @classmethod
    def from_object(cls, document: Any) -> "ForwardBody":
        """Body that a boundary layer already parsed into a structure."""
        return cls(kind=BodyKind.JSON, document=document)

    @classmethod
    def for_request(cls, method: str, data: Optional[bytes]) -> "ForwardBody":
        """Only POST/PUT/PATCH bodies are forwarded."""
        if method.upper() not in BODY_METHODS:
            return cls.empty()
        return cls.from_bytes(data)

    def to_bytes(self) -> Optional[bytes]:
        """Bytes to send upstream; None when there is no body."""
        if self.kind is BodyKind.EMPTY:
            return None
        if self.kind is BodyKind.RAW:
            return self.raw
        # Compact form, identical to what a browser's JSON.stringify produces
        return json.dumps(self.document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
