# api/forms.py
"""
Form intake API endpoints
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from core.pipeline import InboundRequest
from middleware.security import rate_limit_headers

forms_bp = Blueprint('forms', __name__)
logger = logging.getLogger(__name__)


def _inbound_request() -> InboundRequest:
    return InboundRequest(
        headers=dict(request.headers),
        cookies=dict(request.cookies),
        body=request.get_data(cache=True),
        remote_addr=request.remote_addr,
    )


@forms_bp.route('/csrf-token', methods=['GET'])
def issue_csrf_token():
    """Issue a fresh anti-forgery token as JSON body plus cookie"""
    guard = current_app.admission_pipeline.csrf_guard
    token, directives = guard.issue()

    response = jsonify({'success': True, 'csrfToken': token})
    response.set_cookie(directives.name, token, **directives.as_set_cookie_kwargs())
    response.headers['Cache-Control'] = 'no-store'
    return response


@forms_bp.route('/', methods=['POST'])
def submit_form():
    """
    Accept a form submission

    Runs the admission pipeline, then fans the sanitized submission out
    to every configured delivery service. Guard failures propagate as
    IntakeError and are rendered by the application error handler.
    """
    admission = current_app.admission_pipeline.admit(_inbound_request())

    submission = admission.submission
    result = current_app.dispatcher.dispatch(submission)

    logger.info(
        f"Form submission processed: success={result.success} "
        f"submission_id={result.submission_id} origin={submission.metadata.origin}"
    )

    response = jsonify(result.to_dict())
    response.status_code = 200 if result.success else 500
    return rate_limit_headers(response, admission.rate_limit)
