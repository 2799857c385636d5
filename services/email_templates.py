# services/email_templates.py
"""
Notification email rendering

Submission values are already entity-encoded by the sanitizer, so they
enter the HTML template as Markup (no second escaping pass) and are
unescaped for the plain-text part.
"""

import html
import logging
from dataclasses import dataclass
from typing import Any

from jinja2 import Environment, StrictUndefined, select_autoescape
from markupsafe import Markup

from core.models import Submission

logger = logging.getLogger(__name__)


HTML_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; line-height: 1.5; color: #333;">
  <h2>{{ title }}</h2>
{% for label, value in fields %}
  <div style="margin-bottom: 10px;"><strong>{{ label }}:</strong> {{ value }}</div>
{% endfor %}
  <hr>
  <div>Submission ID: {{ submission_id }}</div>
  <div>Timestamp: {{ meta.timestamp }}</div>
  <div>IP Address: {{ meta.ip }}</div>
  <div>Origin: {{ meta.origin }}</div>
</div>
"""

TEXT_TEMPLATE = """\
{{ title }}

{% for label, value in fields %}
{{ label }}: {{ value }}
{% endfor %}

---
Submission ID: {{ submission_id }}
Timestamp: {{ meta.timestamp }}
IP Address: {{ meta.ip }}
Origin: {{ meta.origin }}
"""


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def _label(name: str) -> str:
    return name[:1].upper() + name[1:]


class NotificationRenderer:
    """Renders the HTML and text bodies of a submission notification"""

    def __init__(self, title: str = 'New Form Submission'):
        self.title = title
        self.html_env = Environment(
            autoescape=select_autoescape(default=True, default_for_string=True),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.text_env = Environment(
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._html_template = self.html_env.from_string(HTML_TEMPLATE)
        self._text_template = self.text_env.from_string(TEXT_TEMPLATE)

    @staticmethod
    def _html_value(value: Any) -> Any:
        if isinstance(value, str):
            return Markup(value)
        return value

    @staticmethod
    def _text_value(value: Any) -> Any:
        if isinstance(value, str):
            return html.unescape(value)
        return value

    def render(self, submission: Submission, submission_id: str, subject: str) -> RenderedEmail:
        meta = submission.metadata.to_dict()

        html_body = self._html_template.render(
            title=self.title,
            fields=[(_label(name), self._html_value(value)) for name, value in submission.fields.items()],
            submission_id=submission_id,
            meta=meta,
        )
        text_body = self._text_template.render(
            title=self.title,
            fields=[(_label(name), self._text_value(value)) for name, value in submission.fields.items()],
            submission_id=submission_id,
            meta=meta,
        )

        return RenderedEmail(subject=subject, html=html_body, text=text_body.strip())
