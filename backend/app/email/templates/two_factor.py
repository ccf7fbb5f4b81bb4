"""Two-factor code and two-factor status templates.

Code templates share one body; only the sentence describing what the code
unlocks differs.
"""

from app.email.templates.layout import code_block, footer_text, wrap_html

PURPOSES = {
    "two_factor_login": "sign in to your account",
    "enable_two_factor": "turn on two-factor authentication",
    "disable_two_factor": "turn off two-factor authentication",
    "password_change_two_factor": "confirm your password change",
}


def code_text(purpose: str):
    def render(vars: dict) -> str:
        code = vars.get("code", "")
        expires_minutes = vars.get("expires_minutes", 10)
        return f"""Use the code below to {PURPOSES[purpose]}:

{code}

This code will expire in {expires_minutes} minutes. If you did not request it, you can ignore this email.
{footer_text()}"""

    return render


def code_html(purpose: str):
    def render(vars: dict) -> str:
        code = vars.get("code", "")
        expires_minutes = vars.get("expires_minutes", 10)
        return wrap_html(
            "Your Verification Code",
            f"""<p>Use the code below to {PURPOSES[purpose]}:</p>
            {code_block(code)}
            <p style="color: #666; font-size: 0.9em;">This code will expire in {expires_minutes} minutes.</p>""",
        )

    return render


def status_text(enabled: bool):
    state = "enabled" if enabled else "disabled"

    def render(vars: dict) -> str:
        return f"""Two-factor authentication has been {state} on your account.

If you did not make this change, reset your password immediately.
{footer_text()}"""

    return render


def status_html(enabled: bool):
    state = "enabled" if enabled else "disabled"

    def render(vars: dict) -> str:
        return wrap_html(
            f"Two-Factor Authentication {state.capitalize()}",
            f"""<p>Two-factor authentication has been {state} on your account.</p>
            <p style="color: #666; font-size: 0.9em;">If you did not make this change, reset your password immediately.</p>""",
        )

    return render
