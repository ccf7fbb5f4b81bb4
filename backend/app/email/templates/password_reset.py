"""Password reset and password change email templates."""

from app.email.templates.layout import button, footer_text, wrap_html


def render_text(vars: dict) -> str:
    """
    Render password reset email text template.

    Args:
        vars: Template variables (reset_url, expires_minutes)

    Returns:
        Plain text email body
    """
    reset_url = vars.get("reset_url", "")
    expires_minutes = vars.get("expires_minutes", 60)

    return f"""You requested a password reset for your account.

Click the link below to reset your password:
{reset_url}

This link will expire in {expires_minutes} minutes.

If you did not request this reset, please ignore this email.
{footer_text()}"""


def render_html(vars: dict) -> str:
    """
    Render password reset email HTML template.

    Args:
        vars: Template variables (reset_url, expires_minutes)

    Returns:
        HTML email body
    """
    reset_url = vars.get("reset_url", "")
    expires_minutes = vars.get("expires_minutes", 60)

    return wrap_html(
        "Password Reset Request",
        f"""<p>You requested a password reset for your account.</p>
        {button(reset_url, "Reset Password")}
        <p style="color: #666; font-size: 0.9em;">This link will expire in {expires_minutes} minutes.</p>
        <p style="color: #666; font-size: 0.9em;">If you did not request this reset, please ignore this email.</p>""",
    )


def render_changed_text(vars: dict) -> str:
    return f"""Your password was changed successfully.

If you did not make this change, reset your password immediately.
{footer_text()}"""


def render_changed_html(vars: dict) -> str:
    return wrap_html(
        "Password Changed",
        """<p>Your password was changed successfully.</p>
        <p style="color: #666; font-size: 0.9em;">If you did not make this change, reset your password immediately.</p>""",
    )
