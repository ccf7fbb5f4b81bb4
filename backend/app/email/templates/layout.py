"""Shared HTML shell for transactional emails."""

from app.core.config import settings


def wrap_html(title: str, body: str) -> str:
    """Wrap an HTML fragment in the common email layout."""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #f4f4f4; padding: 20px; border-radius: 5px;">
        <h2 style="color: #333;">{title}</h2>
        {body}
    </div>
    <p style="margin-top: 20px; color: #999; font-size: 0.8em;">
        ---<br>
        {settings.PROJECT_NAME}
    </p>
</body>
</html>
"""


def button(url: str, label: str) -> str:
    return (
        f'<p><a href="{url}" style="background-color: #007bff; color: white; padding: 10px 20px; '
        f'text-decoration: none; border-radius: 5px; display: inline-block;">{label}</a></p>'
        f'<p>Or copy and paste this link into your browser:</p>'
        f'<p style="word-break: break-all; color: #666;">{url}</p>'
    )


def code_block(code: str) -> str:
    return (
        f'<p style="font-size: 28px; letter-spacing: 6px; font-weight: bold; '
        f'background-color: #fff; padding: 10px; text-align: center;">{code}</p>'
    )


def footer_text() -> str:
    return f"\n---\n{settings.PROJECT_NAME}\n"
