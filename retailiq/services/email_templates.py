"""HTML bodies for outbound emails."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Optional

INVITATION_SUBJECT = "Welcome to RetailIQ - Your Account Invitation"

_BASE_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; background: #f5f5f5; }
    .container { background: white; border-radius: 8px; overflow: hidden; box-shadow: 0 4px 12px rgba(0,0,0,0.1); }
    .header { background: linear-gradient(135deg, #3B82F6, #14B8A6); padding: 25px; text-align: center; }
    .header h1 { color: white; margin: 0; font-size: 24px; font-weight: 600; }
    .content { padding: 25px; }
    .greeting { font-size: 18px; font-weight: 600; margin-bottom: 15px; }
    .info-box { background: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #3B82F6; }
    .button { display: inline-block; padding: 12px 24px; margin: 0 8px; border-radius: 6px; text-decoration: none; font-weight: 600; color: white !important; background: #3B82F6; }
    .accept { background: #10B981; }
    .decline { background: #EF4444; }
    .footer { background: #f9fafb; padding: 15px; text-align: center; border-top: 1px solid #e5e7eb; font-size: 12px; color: #6b7280; }
"""


def _page(title: str, heading: str, body: str, footer: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '  <meta charset="utf-8">\n'
        f"  <title>{escape(title)}</title>\n"
        f"  <style>{_BASE_STYLE}</style>\n"
        "</head>\n<body>\n"
        '  <div class="container">\n'
        f'    <div class="header"><h1>{heading}</h1></div>\n'
        f'    <div class="content">{body}</div>\n'
        f'    <div class="footer"><p>{footer}</p></div>\n'
        "  </div>\n</body>\n</html>"
    )


def invitation_email(
    first_name: Optional[str],
    email: str,
    temporary_password: str,
    action_url: str,
    button_label: str = "Activate Account",
) -> str:
    """Invitation with login details and a single call-to-action link."""
    body = (
        f'<div class="greeting">Hello {escape(first_name or "there")},</div>'
        "<p>You've been invited to join RetailIQ, the advanced retail conversation training platform.</p>"
        '<div class="info-box">'
        "<p><strong>Your account has been created with:</strong></p>"
        f"<p>Email: {escape(email)}</p>"
        f"<p>Temporary Password: {escape(temporary_password)}</p>"
        "<p>Please use the button below to activate your account.</p>"
        "</div>"
        f'<div style="text-align: center;"><a href="{escape(action_url)}" class="button">{escape(button_label)}</a></div>'
        '<p style="margin-top: 25px;">If you have any questions, please contact your administrator.</p>'
    )
    year = datetime.now(timezone.utc).year
    return _page(INVITATION_SUBJECT, "Welcome to RetailIQ", body, f"&copy; {year} RetailIQ - All rights reserved")


def schedule_subject(scenario_title: str) -> str:
    return f"RetailiQ - Role-Play Session: {scenario_title}"


def schedule_email(
    first_name: Optional[str],
    scenario_title: str,
    scenario_description: Optional[str],
    difficulty: Optional[str],
    start_time: Optional[datetime],
    accept_url: str,
    decline_url: str,
) -> str:
    """Session invitation with accept and decline links."""
    when = start_time.strftime("%A, %B %d, %Y") if start_time else "To be confirmed"
    body = (
        f'<div class="greeting">Hello {escape(first_name or "there")},</div>'
        "<p>You have been scheduled for a role-play training session by your manager.</p>"
        '<div class="info-box">'
        f"<h2>{escape(scenario_title)}</h2>"
        f"<p>{escape(scenario_description or '')}</p>"
        f"<p><strong>Date:</strong> {when}</p>"
        f"<p><strong>Difficulty:</strong> {escape(difficulty or '')}</p>"
        "</div>"
        "<p>Please confirm whether you can attend this session by clicking one of the buttons below:</p>"
        '<div style="text-align: center;">'
        f'<a href="{escape(accept_url)}" class="button accept">Accept</a>'
        f'<a href="{escape(decline_url)}" class="button decline">Decline</a>'
        "</div>"
    )
    return _page(
        schedule_subject(scenario_title),
        "Role-Play Session Invitation",
        body,
        "Automated message from <strong>RetailIQ</strong> - Do not reply",
    )
