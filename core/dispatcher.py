# core/dispatcher.py
"""
Best-effort fan-out of an admitted submission to downstream services

Every configured service is attempted independently and concurrently;
a failure in one never prevents the attempt on another. The dispatch
succeeds when at least one configured service succeeds. There is no
cross-service transaction and no deduplication: each call gets a fresh
submission id used only to correlate logs and the response.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Mapping, Optional, Protocol

from core.models import DispatchResult, ServiceResult, Submission, generate_submission_id

logger = logging.getLogger(__name__)


class DeliveryService(Protocol):
    """An outbound integration that accepts submissions"""

    name: str

    def deliver(self, submission: Submission, submission_id: str) -> ServiceResult:
        ...


class SubmissionDispatcher:
    """
    Applies a submission to every configured delivery service

    Args:
        services: Service name -> adapter, in response order
        id_factory: Produces the per-dispatch submission id
    """

    def __init__(self, services: Mapping[str, DeliveryService],
                 id_factory: Callable[[], str] = generate_submission_id):
        self.services = dict(services)
        self.id_factory = id_factory

    @staticmethod
    def _attempt(name: str, service: DeliveryService, submission: Submission,
                 submission_id: str) -> ServiceResult:
        try:
            return service.deliver(submission, submission_id)
        except Exception as e:
            logger.error(f"{name} delivery for {submission_id} raised: {e}", exc_info=True)
            return ServiceResult(success=False, error=str(e) or type(e).__name__)

    def dispatch(self, submission: Submission, submission_id: Optional[str] = None) -> DispatchResult:
        """
        Deliver a submission to all configured services

        Returns:
            DispatchResult aggregating one ServiceResult per configured service
        """
        submission_id = submission_id or self.id_factory()
        result = DispatchResult(submission_id=submission_id)

        if not self.services:
            logger.warning(f"Submission {submission_id} not delivered: no delivery services configured")
            return result

        # One worker per service; the pool lives only for this dispatch
        with ThreadPoolExecutor(max_workers=len(self.services),
                                thread_name_prefix='dispatch') as executor:
            futures = {
                name: executor.submit(self._attempt, name, service, submission, submission_id)
                for name, service in self.services.items()
            }
            results: Dict[str, ServiceResult] = {name: future.result() for name, future in futures.items()}

        result.services.update(results)

        if result.success:
            failed = [name for name, r in results.items() if not r.success]
            if failed:
                logger.warning(f"Submission {submission_id} partially delivered; failed: {', '.join(failed)}")
            else:
                logger.info(f"Submission {submission_id} delivered to {', '.join(results)}")
        else:
            logger.error(f"Submission {submission_id} failed on every configured service")

        return result
