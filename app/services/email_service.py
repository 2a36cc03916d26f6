"""
Purchase confirmation emails over SMTP
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Any

import jinja2

from config import settings

logger = logging.getLogger(__name__)


def format_brl(amount_int: int) -> str:
    return f"R$ {amount_int // 100},{amount_int % 100:02d}"


class EmailService:
    """Renders and sends transactional emails"""

    def __init__(self):
        self.template_env = jinja2.Environment(
            loader=jinja2.DictLoader(self._get_built_in_templates()),
            autoescape=jinja2.select_autoescape(['html', 'xml'])
        )
        self.template_env.filters['brl'] = format_brl

    def _get_built_in_templates(self) -> Dict[str, str]:
        return {
            'purchase_confirmation.html': '''
            <!DOCTYPE html>
            <html>
            <head><meta charset="utf-8"><title>{{ title }}</title></head>
            <body style="font-family: Arial, sans-serif; color: #333;">
                <h2>{{ title }}</h2>
                <p>Hi {{ user_name }},</p>
                {% if is_gift %}
                <p>You received <strong>{{ quantity }}x {{ product_name }}</strong> as a gift from {{ buyer_name }}.</p>
                {% else %}
                <p>Your purchase of <strong>{{ quantity }}x {{ product_name }}</strong> is confirmed.</p>
                {% endif %}
                <p>Total: {{ amount_int | brl }}</p>
                {% if token_count %}<p>{{ token_count }} activity token(s) were added to your account.</p>{% endif %}
                <p><a href="{{ products_url }}">See your products</a></p>
            </body>
            </html>
            ''',
            'purchase_confirmation.txt': (
                "{{ title }}\n\n"
                "Hi {{ user_name }},\n\n"
                "{% if is_gift %}You received {{ quantity }}x {{ product_name }} as a gift from {{ buyer_name }}."
                "{% else %}Your purchase of {{ quantity }}x {{ product_name }} is confirmed.{% endif %}\n"
                "Total: {{ amount_int | brl }}\n"
                "{% if token_count %}{{ token_count }} activity token(s) were added to your account.\n{% endif %}"
                "\nSee your products: {{ products_url }}\n"
            )
        }

    def render(self, template_name: str, data: Dict[str, Any]) -> Dict[str, str]:
        return {
            'html': self.template_env.get_template(f"{template_name}.html").render(**data),
            'text': self.template_env.get_template(f"{template_name}.txt").render(**data)
        }

    def send_email(self, to_email: str, subject: str, template_name: str, template_data: Dict[str, Any]) -> bool:
        """Send email via SMTP; returns False when not configured or on failure"""
        if not settings.SMTP_HOST:
            logger.info(f"SMTP not configured, skipping '{subject}' to {to_email}")
            return False

        content = self.render(template_name, {**template_data, 'title': subject})

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = settings.SMTP_FROM_EMAIL
        msg['To'] = to_email
        msg.attach(MIMEText(content['text'], 'plain'))
        msg.attach(MIMEText(content['html'], 'html'))

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
                server.starttls()
                if settings.SMTP_USER:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to_email}: {e}")
            return False

        logger.info(f"Sent '{subject}' to {to_email}")
        return True


email_service = EmailService()
