import resend
import structlog

from .errors import EmailDispatchError

log = structlog.get_logger(__name__)

RESET_SUBJECT = 'Reset your myRupaiya password'


def reset_link(base_url, token):
    return f"{base_url.rstrip('/')}/reset-password/{token}"


def reset_email_bodies(link, ttl_minutes=15):
    html = (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #FB8500;">Reset Your Password</h2>'
        '<p>You requested to reset your password for your myRupaiya account.</p>'
        f'<p>Click the button below to reset your password. This link will expire in {ttl_minutes} minutes.</p>'
        f'<a href="{link}" style="display: inline-block; padding: 12px 24px; background: #FB8500; '
        'color: white; text-decoration: none; border-radius: 6px; margin: 20px 0;">Reset Password</a>'
        '<p style="color: #666; font-size: 14px;">If you didn\'t request this, please ignore this email.</p>'
        f'<p style="color: #666; font-size: 14px;">Or copy and paste this link: {link}</p>'
        '</div>'
    )
    text = (
        'Reset your myRupaiya password\n\n'
        f'Click this link to reset your password (expires in {ttl_minutes} minutes):\n{link}\n\n'
        "If you didn't request this, please ignore this email."
    )
    return html, text


class ResendMailer:
    """Sends password reset links through the Resend API. No retries."""

    def __init__(self, api_key, sender):
        self.api_key = api_key
        self.sender = sender

    def send_password_reset(self, recipient, link, ttl_minutes=15):
        if not self.api_key:
            raise EmailDispatchError('Email delivery is not configured')
        html, text = reset_email_bodies(link, ttl_minutes)
        resend.api_key = self.api_key
        try:
            resend.Emails.send({
                'from': self.sender,
                'to': [recipient],
                'subject': RESET_SUBJECT,
                'html': html,
                'text': text,
            })
        except Exception as exc:
            log.error('reset_email_failed', error=str(exc))
            raise EmailDispatchError() from exc
