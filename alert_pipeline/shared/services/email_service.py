from __future__ import annotations

import html
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..clients.email_client import EmailClient

logger = logging.getLogger(__name__)

TEMPLATES_PATH = Path(__file__).resolve().parent.parent.parent / "templates"


class EmailTemplateEngine:
    """Jinja2 email template engine"""

    def __init__(self, templates_path: Optional[Path] = None):
        self.templates_path = Path(templates_path or TEMPLATES_PATH)

        self.env = Environment(
            loader=FileSystemLoader(str(self.templates_path)),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters['datetime'] = self._datetime_filter

        logger.debug(f"Email template engine initialized with path: {self.templates_path}")

    def _datetime_filter(self, value: datetime, format: str = '%Y-%m-%d %H:%M') -> str:
        """Custom datetime filter for templates"""
        if not isinstance(value, datetime):
            return str(value)
        return value.strftime(format)

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render a template with given context.

        Args:
            template_name: Template file name (e.g., 'email/new_alert.html')
            context: Template context variables

        Returns:
            Rendered template content
        """
        template = self.env.get_template(template_name)
        return template.render(**context)


def html_to_text(html_content: str) -> str:
    """Convert HTML to plain text (simple implementation)"""
    text = re.sub(r'<(style|script|title)[^>]*>.*?</\1>', '', html_content, flags=re.S | re.I)
    text = re.sub(r'<[^>]+>', ' ', text)
    text = html.unescape(text)
    return re.sub(r'\s+', ' ', text).strip()


class EmailService:
    """Renders alert emails and sends them through the email gateway"""

    template_name = "email/new_alert.html"

    def __init__(self, client: Optional[EmailClient] = None, template_engine: Optional[EmailTemplateEngine] = None):
        self.client = client or EmailClient.from_settings()
        self.template_engine = template_engine or EmailTemplateEngine()

    @staticmethod
    def alert_subject(alert) -> str:
        return f"New Alert: {alert.title} - {alert.organization_name}"

    def render_alert(self, alert) -> Dict[str, str]:
        """Render subject, HTML and text bodies for a live alert"""
        subject = self.alert_subject(alert)
        context = {
            "subject": subject,
            "title": alert.title,
            "description": alert.description,
            "organization_name": alert.organization_name,
            "group_name": alert.group_name,
            "alert_type": alert.type,
            "severity": alert.severity,
            "location_text": alert.location.display_text() if alert.location else "No specific location",
            "posted_at": alert.posted_at,
            "posted_by": alert.posted_by,
        }
        html_content = self.template_engine.render_template(self.template_name, context)
        return {"subject": subject, "html": html_content, "text": html_to_text(html_content)}

    async def send_alert_email(self, to: str, alert) -> Dict[str, Any]:
        """Send the new-alert email; gateway failures come back as ``ok=False``"""
        rendered = self.render_alert(alert)
        return await self.client.send(
            to=to,
            subject=rendered["subject"],
            html=rendered["html"],
            text=rendered["text"],
            meta={"alert_id": alert.id, "organization_id": alert.organization_id},
        )
