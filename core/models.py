# core/models.py
"""
Data carried through the intake pipeline
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

FieldValue = Union[str, int, float, bool]

# Keys owned by the pipeline; client-supplied copies are discarded
METADATA_KEYS = frozenset({'timestamp', 'ip', 'userAgent', 'origin'})


@dataclass(frozen=True)
class SubmissionMetadata:
    """Request-derived metadata attached by the pipeline"""
    client_ip: str
    user_agent: str
    origin: str
    timestamp: datetime

    @property
    def timestamp_iso(self) -> str:
        return self.timestamp.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    def to_dict(self) -> Dict[str, str]:
        return {
            'timestamp': self.timestamp_iso,
            'ip': self.client_ip,
            'userAgent': self.user_agent,
            'origin': self.origin,
        }


@dataclass(frozen=True)
class Submission:
    """
    Sanitized, immutable form submission

    Fields keep submission order. Metadata never comes from the client.
    """
    fields: Mapping[str, FieldValue]
    metadata: SubmissionMetadata

    @classmethod
    def create(cls, fields: Mapping[str, Any], client_ip: str, user_agent: str, origin: str,
               timestamp: Optional[datetime] = None) -> 'Submission':
        clean = {name: value for name, value in fields.items() if name not in METADATA_KEYS}
        metadata = SubmissionMetadata(
            client_ip=client_ip or 'unknown',
            user_agent=user_agent or 'unknown',
            origin=origin or 'unknown',
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        return cls(fields=MappingProxyType(clean), metadata=metadata)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.fields)
        data.update(self.metadata.to_dict())
        return data


@dataclass(frozen=True)
class ServiceResult:
    """Outcome of delivering a submission to one downstream service"""
    success: bool
    error: Optional[str] = None
    provider_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'success': self.success}
        if self.error:
            payload['error'] = self.error
        if self.provider_id:
            payload['id'] = self.provider_id
        return payload


@dataclass
class DispatchResult:
    """Aggregated outcome of one dispatch; success means ANY service succeeded"""
    submission_id: str
    services: Dict[str, ServiceResult] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return any(result.success for result in self.services.values())

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'success': self.success,
            'submissionId': self.submission_id,
        }
        for name, result in self.services.items():
            payload[name] = result.to_dict()
        if not self.services:
            payload['error'] = 'No delivery services are configured.'
        elif not self.success:
            payload['error'] = 'Submission could not be delivered. Please try again later.'
        return payload


def generate_submission_id() -> str:
    """Opaque, time-prefixed identifier used only for log correlation"""
    return f"sub_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
