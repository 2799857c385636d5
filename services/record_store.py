# services/record_store.py
"""
Airtable record store adapter

Writes one record per submission through the shared retry policy and
reports the provider-assigned record id.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from core.exceptions import TransientIntegrationFailure
from core.models import ServiceResult, Submission
from core.retry import with_retry

logger = logging.getLogger(__name__)


class AirtableRecordStore:
    """Stores submissions as Airtable records"""

    name = 'recordStore'

    FIELD_MAPPING = {
        'name': 'Name',
        'email': 'Email',
        'phone': 'Phone',
        'message': 'Message',
        'subject': 'Subject',
        'company': 'Company',
        'website': 'Website',
        'source': 'Source',
    }

    METADATA_MAPPING = {
        'timestamp': 'Timestamp',
        'ip': 'IP Address',
        'userAgent': 'User Agent',
        'origin': 'Origin',
    }

    def __init__(self,
                 api_key: str,
                 base_id: str,
                 table_name: str = 'Form_Submissions',
                 base_url: str = 'https://api.airtable.com/v0',
                 timeout: float = 10.0,
                 max_attempts: int = 3,
                 retry_base_delay: float = 1.0,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.api_key = api_key
        self.base_id = base_id
        self.table_name = table_name
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.transport = transport
        self.sleep = sleep

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/{self.base_id}/{self.table_name}"

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {self.api_key}",
            'Content-Type': 'application/json',
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def build_payload(self, submission: Submission, submission_id: str) -> Dict[str, Any]:
        """Map submission fields and metadata onto Airtable column names"""
        fields: Dict[str, Any] = {}
        for key, value in submission.fields.items():
            column = self.FIELD_MAPPING.get(key) or (key[:1].upper() + key[1:])
            fields[column] = value
        for key, value in submission.metadata.to_dict().items():
            fields[self.METADATA_MAPPING[key]] = value
        fields['Submission ID'] = submission_id
        return {'records': [{'fields': fields}]}

    @staticmethod
    def _record_id(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        records = data.get('records')
        if isinstance(records, list) and records and isinstance(records[0], dict):
            return records[0].get('id')
        return data.get('id')

    def deliver(self, submission: Submission, submission_id: str) -> ServiceResult:
        """
        Save a submission as a new record

        Returns:
            ServiceResult; an HTTP error status is reported, not raised

        Raises:
            TransientIntegrationFailure: Network errors persisted through every attempt
        """
        payload = self.build_payload(submission, submission_id)

        with self._client() as client:
            try:
                response = with_retry(
                    lambda: client.post(self.table_url, json=payload, headers=self._headers()),
                    max_attempts=self.max_attempts,
                    base_delay=self.retry_base_delay,
                    sleep=self.sleep,
                    description=f"Airtable save for {submission_id}",
                )
            except httpx.TransportError as e:
                raise TransientIntegrationFailure(self.name, str(e)) from e

        if response.is_success:
            try:
                record_id = self._record_id(response.json())
            except ValueError:
                record_id = None
            logger.info(f"Submission {submission_id} saved to Airtable as {record_id}")
            return ServiceResult(success=True, provider_id=record_id)

        error = f"Airtable API error: {response.status_code} - {response.text[:500]}"
        logger.error(f"Submission {submission_id} not saved: {error}")
        return ServiceResult(success=False, error=error)

    def check_connection(self) -> ServiceResult:
        """Issue a lightweight read against the table to verify credentials"""
        try:
            with self._client() as client:
                response = client.get(self.table_url, params={'maxRecords': 1}, headers=self._headers())
        except httpx.HTTPError as e:
            return ServiceResult(success=False, error=str(e))

        if response.is_success:
            return ServiceResult(success=True)
        return ServiceResult(success=False, error=f"HTTP {response.status_code}")
