"""Simple message lookup for API responses.

Callers pattern-match on these strings, so they are kept stable.
"""

from __future__ import annotations

_MESSAGES: dict[str, str] = {
    "error.admin_required": "Unauthorized - Admin access required",
    "error.no_auth_header": "No authorization header",
    "error.invalid_token": "Invalid user token",
    "error.unexpected": "An unexpected error occurred",
    "activation.invalid": "Invalid or expired activation token",
    "activation.expired": "Activation token has expired",
    "activation.success": "User activated successfully",
    "agent.no_id": "No agent ID returned from ElevenLabs",
    "user.created": "User created and invitation sent",
    "email.invitation_sent": "Invitation email sent successfully",
    "email.schedule_sent": "Email sent successfully",
    "subscription.updated": "Subscription updated successfully",
    "chat.start_prompt": "Generate an appropriate professional greeting and conversation opener based on the context.",
    "prompt.no_response": "No response generated",
}


def msg(key: str, **kwargs: object) -> str:
    """Return a message by key, or the key itself if not found.

    Keyword arguments are interpolated with str.format.
    """
    text = _MESSAGES.get(key, key)
    return text.format(**kwargs) if kwargs else text
