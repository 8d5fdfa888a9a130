"""
Invitation email task tests.
"""

import resend

from davinci.core.config import settings
from davinci.workers.email_tasks import (
    INVITE_ORG_MEMBER_MAIL_SUBJECT,
    build_invitation_link,
    render_invitation_html,
    send_invitation_email,
)


def test_link_quotes_token():
    link = build_invitation_link("https://app.example.com/", "abc+/=")
    assert link == "https://app.example.com/joinOrganization?token=abc%2B%2F%3D"


def test_html_escapes_names():
    html = render_invitation_html("bob", "<alice>", "Acme & Co", "https://app.example.com/x")
    assert "&lt;alice&gt;" in html
    assert "Acme &amp; Co" in html
    assert "https://app.example.com/x" in html


def test_task_sends_through_resend(monkeypatch):
    sent = []

    def fake_send(params):
        sent.append(params)
        return {"id": "email-123"}

    monkeypatch.setattr(resend.Emails, "send", fake_send)

    result = send_invitation_email.apply(kwargs={
        "to_email": "bob@example.com",
        "username": "bob",
        "inviter_name": "alice",
        "org_name": "Acme",
        "invitation_token": "tok",
        "frontend_url": "https://app.example.com",
    })

    assert result.get() == {"status": "sent", "message_id": "email-123"}
    assert len(sent) == 1
    params = sent[0]
    assert params["to"] == ["bob@example.com"]
    assert params["from"] == settings.EMAIL_FROM
    assert params["subject"] == INVITE_ORG_MEMBER_MAIL_SUBJECT % ("alice", "Acme")
    assert params["subject"] == "[Davinci] alice has invited you to join organization Acme"
    assert "joinOrganization?token=tok" in params["html"]
