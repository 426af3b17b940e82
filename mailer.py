import logging

import requests

from config import Settings

logger = logging.getLogger(__name__)

_STYLE = """
  body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
  .container { max-width: 600px; margin: 0 auto; padding: 20px; }
  .button { display: inline-block; padding: 10px 20px; background-color: #007bff;
            color: white; text-decoration: none; border-radius: 5px; margin: 20px 0; }
  .footer { margin-top: 20px; padding-top: 20px; border-top: 1px solid #eee; font-size: 12px; color: #777; }
"""


class EmailError(Exception):
    pass


def reset_email_html(app_name: str, reset_url: str, ttl_min: int) -> str:
    return f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><style>{_STYLE}</style></head>
<body><div class="container">
  <h2>Password Reset Request</h2>
  <p>You recently requested to reset your password for your {app_name} account. Click the button below to reset it.</p>
  <a href="{reset_url}" class="button">Reset Password</a>
  <p>If you did not request a password reset, please ignore this email or contact support if you have questions.</p>
  <p>This password reset link is only valid for the next {ttl_min} minutes.</p>
  <div class="footer">
    <p>If you're having trouble with the button above, copy and paste the URL below into your web browser:</p>
    <p>{reset_url}</p>
  </div>
</div></body></html>"""


def reset_confirmation_html(app_name: str) -> str:
    return f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><style>{_STYLE}</style></head>
<body><div class="container">
  <h2>Password Changed Successfully</h2>
  <p>Your password for {app_name} has been successfully changed.</p>
  <p>If you did not make this change, please contact our support team immediately.</p>
</div></body></html>"""


class Mailer:
    """Sends transactional email through an HTTP email API (Resend-compatible)."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.settings.email_api_key:
            logger.warning("Email is not configured; skipping %r to %s", subject, to)
            return
        try:
            resp = requests.post(
                self.settings.email_api_url,
                json={"from": self.settings.email_from, "to": [to], "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self.settings.email_api_key}"},
                timeout=self.settings.email_timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise EmailError(str(e)) from e
        logger.info("Sent %r to %s", subject, to)

    def send_password_reset(self, to: str, token: str) -> None:
        reset_url = f"{self.settings.frontend_url}/reset-password/{token}"
        self.send(
            to,
            "Password Reset Request",
            reset_email_html(self.settings.app_name, reset_url, self.settings.reset_token_ttl_min),
        )

    def send_password_changed(self, to: str) -> None:
        self.send(to, "Password Reset Confirmation", reset_confirmation_html(self.settings.app_name))
