"""Email templates."""

from app.email.templates import password_reset, two_factor, verification

TEMPLATES = {
    "verify_email": {
        "subject": "Verify your email address",
        "text": verification.render_text,
        "html": verification.render_html,
    },
    "verification_complete": {
        "subject": "Your email has been verified",
        "text": verification.render_complete_text,
        "html": verification.render_complete_html,
    },
    "password_reset": {
        "subject": "Reset your password",
        "text": password_reset.render_text,
        "html": password_reset.render_html,
    },
    "password_change_complete": {
        "subject": "Your password has been changed",
        "text": password_reset.render_changed_text,
        "html": password_reset.render_changed_html,
    },
    "two_factor_enabled": {
        "subject": "Two-factor authentication enabled",
        "text": two_factor.status_text(True),
        "html": two_factor.status_html(True),
    },
    "two_factor_disabled": {
        "subject": "Two-factor authentication disabled",
        "text": two_factor.status_text(False),
        "html": two_factor.status_html(False),
    },
}

for _name, _subject in (
    ("two_factor_login", "Your sign-in code"),
    ("enable_two_factor", "Confirm enabling two-factor authentication"),
    ("disable_two_factor", "Confirm disabling two-factor authentication"),
    ("password_change_two_factor", "Confirm your password change"),
):
    TEMPLATES[_name] = {
        "subject": _subject,
        "text": two_factor.code_text(_name),
        "html": two_factor.code_html(_name),
    }


def render_template(template_key: str, vars: dict) -> tuple[str, str, str]:
    """
    Render email template.

    Args:
        template_key: Template identifier
        vars: Template variables

    Returns:
        (subject, text body, html body)
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template key: {template_key}")

    template = TEMPLATES[template_key]
    return template["subject"], template["text"](vars), template["html"](vars)
