"""
Email background tasks.

Organization invitation emails.
"""

import logging
from html import escape
from urllib.parse import quote

from davinci.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

INVITE_ORG_MEMBER_MAIL_SUBJECT = "[Davinci] %s has invited you to join organization %s"


def build_invitation_link(frontend_url: str, invitation_token: str) -> str:
    return f"{frontend_url.rstrip('/')}/joinOrganization?token={quote(invitation_token, safe='')}"


def render_invitation_html(
    username: str, inviter_name: str, org_name: str, accept_url: str
) -> str:
    return f"""
        <h2>Join {escape(org_name)} on Davinci</h2>
        <p>Hi {escape(username)},</p>
        <p><strong>{escape(inviter_name)}</strong> has invited you to join the
        organization <strong>{escape(org_name)}</strong>.</p>
        <p>
            <a href="{escape(accept_url)}"
               style="background:#1890ff;color:#fff;padding:12px 24px;
                      border-radius:4px;text-decoration:none;display:inline-block;">
                Accept Invitation
            </a>
        </p>
        <p>If you did not expect this invitation, you can safely ignore this email.</p>
    """


@celery_app.task(name="davinci.workers.email_tasks.send_invitation_email", bind=True, max_retries=3)
def send_invitation_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    username: str,
    inviter_name: str,
    org_name: str,
    invitation_token: str,
    frontend_url: str,
) -> dict[str, str]:
    """
    Send an organization invitation email via Resend.

    Args:
        to_email: Invitee email address.
        username: Invitee username.
        inviter_name: Username of the owner who sent the invite.
        org_name: Organization display name.
        invitation_token: Encrypted invitation token.
        frontend_url: Frontend base URL for constructing the join link.

    Returns:
        Dict with status and message_id.
    """
    try:
        import resend

        from davinci.core.config import settings

        resend.api_key = settings.RESEND_API_KEY

        accept_url = build_invitation_link(frontend_url, invitation_token)

        params: resend.Emails.SendParams = {
            "from": settings.EMAIL_FROM,
            "to": [to_email],
            "subject": INVITE_ORG_MEMBER_MAIL_SUBJECT % (inviter_name, org_name),
            "html": render_invitation_html(username, inviter_name, org_name, accept_url),
        }

        response = resend.Emails.send(params)
        logger.info("Invitation email to %s sent, id=%s", to_email, response["id"])
        return {"status": "sent", "message_id": response["id"]}

    except Exception as exc:
        logger.warning("Invitation email to %s failed: %s", to_email, exc)
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
