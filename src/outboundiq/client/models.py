# src/outboundiq/client/models.py
# The record the interceptors produce and the client queues and ships

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from outboundiq.config import REQUEST_TYPE
from outboundiq.tracking.context import UserContextLike, user_context_to_dict
from outboundiq.utils.helpers import to_unix_seconds


@dataclass
class TrackedCall:
    """
    One observed outbound HTTP call.

    status_code is 0 when the call failed before a response arrived;
    error then holds the failure message. id and timestamp are filled in
    by the client when the call is accepted into the queue.
    """
    method: str
    url: str
    status_code: int = 0
    duration: float = 0.0  # milliseconds
    request_headers: Dict[str, str] = field(default_factory=dict)
    response_headers: Dict[str, str] = field(default_factory=dict)
    request_body: Optional[str] = None
    response_body: Optional[str] = None
    request_size: int = 0
    response_size: int = 0
    user_context: Optional[UserContextLike] = None
    error: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    id: Optional[str] = None
    timestamp: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrackedCall":
        """Build a call from a dict, ignoring keys that aren't fields."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_wire(self, memory_peak: int = 0) -> Dict[str, Any]:
        """
        Convert to the collector's record format.

        The layout matches what the PHP and JavaScript SDKs send, so one
        collector endpoint can decode all of them.
        """
        record: Dict[str, Any] = {
            "transaction_id": self.id,
            "url": self.url,
            "method": self.method,
            "duration": self.duration,
            "status_code": self.status_code,
            "request_headers": self.request_headers or {},
            "request_body": self.request_body,
            "response_headers": self.response_headers or {},
            "response_body": self.response_body,
            "timestamp": to_unix_seconds(self.timestamp) if self.timestamp else None,
            "memory_usage": 0,
            "memory_peak": memory_peak,
            "request_type": REQUEST_TYPE,
        }
        if self.error:
            record["error"] = {"message": self.error, "type": "network"}
        user_context = user_context_to_dict(self.user_context)
        if user_context:
            record["user_context"] = user_context
        if self.tags:
            record["tags"] = list(self.tags)
        return record
