"""Email address verification templates."""

from app.email.templates.layout import button, footer_text, wrap_html


def render_text(vars: dict) -> str:
    verify_url = vars.get("verify_url", "")
    expires_minutes = vars.get("expires_minutes", 60)

    return f"""Welcome! Please confirm your email address.

Click the link below to verify your account:
{verify_url}

This link will expire in {expires_minutes} minutes.
{footer_text()}"""


def render_html(vars: dict) -> str:
    verify_url = vars.get("verify_url", "")
    expires_minutes = vars.get("expires_minutes", 60)

    return wrap_html(
        "Verify Your Email",
        f"""<p>Welcome! Please confirm your email address.</p>
        {button(verify_url, "Verify Email")}
        <p style="color: #666; font-size: 0.9em;">This link will expire in {expires_minutes} minutes.</p>""",
    )


def render_complete_text(vars: dict) -> str:
    return f"""Your email address has been verified. You can now sign in.
{footer_text()}"""


def render_complete_html(vars: dict) -> str:
    return wrap_html(
        "Email Verified",
        "<p>Your email address has been verified. You can now sign in.</p>",
    )
