"""ZeptoMail implementation of the Notifier protocol.

Renders one Jinja2 template per purpose and posts it to the ZeptoMail HTTP
API through the shared HttpClient. Every failure (missing API token,
non-2xx, transport error, template error) is logged and reported as False.
"""

import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.email.protocol import NotificationPayload, NotificationPurpose
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.com/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

_TEMPLATES: dict[NotificationPurpose, tuple[str, str]] = {
    NotificationPurpose.VERIFICATION: ("verification.html", "Verify your email"),
    NotificationPurpose.PASSWORD_RESET: ("password_reset.html", "Reset your password"),
    NotificationPurpose.TWO_FACTOR: ("two_factor.html", "Your sign-in code"),
}


def render_text_body(purpose: NotificationPurpose, payload: NotificationPayload) -> str:
    greeting = f"Hello {payload.name}," if payload.name else "Hello,"
    lines = [greeting, ""]
    if payload.code:
        lines.append(f"Your code is: {payload.code}")
    if payload.link:
        lines.append(f"Open this link to continue: {payload.link}")
    if payload.expires_in_minutes:
        lines.append(f"It expires in {payload.expires_in_minutes} minutes.")
    lines += ["", "If you did not request this, you can ignore this message."]
    return "\n".join(lines)


class ZeptoMailNotifier:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_name: str = "Identity Portal",
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def _post(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        html_body: str,
        text_body: str,
    ) -> bool:
        if not self._settings.zepto_api_token:
            log.error("zepto_mail_send_failed", reason="token_not_configured")
            return False

        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [
                {
                    "email_address": {
                        "address": to_email,
                        "name": to_name or to_email,
                    }
                }
            ],
            "subject": subject,
            "htmlbody": html_body,
            "textbody": text_body,
        }

        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"

        headers = {"Authorization": token, "Content-Type": "application/json"}

        try:
            response = await self._http.post(_ZEPTO_API_URL, json=payload, headers=headers)
            if response.status_code in (200, 201, 202):
                log.info("email_sent_success", subject=subject)
                return True
            log.error(
                "email_sent_failed",
                subject=subject,
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False
        except Exception as e:
            log.error(
                "email_send_error",
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def send(
        self,
        purpose: NotificationPurpose,
        recipient: str,
        payload: NotificationPayload,
    ) -> bool:
        template_name, title = _TEMPLATES[purpose]
        subject = f"{title} - {self._app_name}"
        try:
            html_body = self._jinja.get_template(template_name).render(
                app_name=self._app_name,
                user_name=payload.name,
                otp_code=payload.code,
                link=payload.link,
                expires_in_minutes=payload.expires_in_minutes,
            )
        except Exception as e:
            log.error(
                "email_render_error",
                purpose=purpose.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        text_body = render_text_body(purpose, payload)
        return await self._post(recipient, payload.name, subject, html_body, text_body)
