"""Transactional email bodies and link builders."""

from datetime import datetime, timedelta, timezone
from html import escape

VERIFY_EMAIL_PATH = "/v1/auth/verify-email"


def verification_link(public_base_url: str, token: str) -> str:
    return f"{public_base_url.rstrip('/')}{VERIFY_EMAIL_PATH}/{token}"


def reset_link(password_reset_url: str, token: str) -> str:
    return f"{password_reset_url}?token={token}"


def describe_lifetime(lifetime: timedelta) -> str:
    """Whole hours when the lifetime allows it, minutes otherwise."""
    minutes = int(lifetime.total_seconds() // 60)
    value, unit = (minutes // 60, "hour") if minutes % 60 == 0 else (minutes, "minute")
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
           background: #f5f5f5; margin: 0; padding: 0; }}
    .container {{ max-width: 520px; margin: 40px auto; background: #fff;
                 border-radius: 16px; overflow: hidden; }}
    .header {{ background: {accent}; padding: 40px 32px; text-align: center; }}
    .header h1 {{ color: #fff; margin: 0; font-size: 28px; }}
    .body {{ padding: 36px 32px; color: #444; font-size: 15px; line-height: 1.6; }}
    .btn {{ display: inline-block; background: {accent}; color: #fff !important;
           text-decoration: none; padding: 14px 32px; border-radius: 10px; font-weight: 700; }}
    .footer {{ padding: 20px 32px; border-top: 1px solid #eee; text-align: center;
              color: #999; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{title}</h1></div>
    <div class="body">
      {intro}
      <p style="text-align:center; margin: 32px 0;">
        <a class="btn" href="{link}">{button}</a>
      </p>
      <p>{note}</p>
    </div>
    <div class="footer">
      &copy; {year} {sender_name}<br/>
      <small>If the button doesn't work: {link}</small>
    </div>
  </div>
</body>
</html>
"""


def verification_email(
    sender_name: str, link: str, expires_in: timedelta = timedelta(hours=24)
) -> tuple[str, str]:
    """Return (subject, html) for the signup verification email."""
    html = _LAYOUT.format(
        accent="#6C63FF",
        title=escape(sender_name),
        intro="<p>Thanks for signing up! Confirm your email address to activate your account.</p>",
        link=escape(link, quote=True),
        button="Verify my email",
        note=f"This link expires in <strong>{describe_lifetime(expires_in)}</strong>. "
        "If you didn't sign up, ignore this email.",
        year=datetime.now(timezone.utc).year,
        sender_name=escape(sender_name),
    )
    return f"Verify your {sender_name} account", html


def password_reset_email(
    sender_name: str, link: str, expires_in: timedelta = timedelta(hours=1)
) -> tuple[str, str]:
    """Return (subject, html) for the password reset email."""
    html = _LAYOUT.format(
        accent="#FF6B6B",
        title="Password Reset",
        intro="<p>Someone requested a password reset for your account. "
        "If this was you, set a new password here:</p>",
        link=escape(link, quote=True),
        button="Reset Password",
        note=f"This link expires in <strong>{describe_lifetime(expires_in)}</strong>. "
        "If you didn't request this, you can safely ignore this email.",
        year=datetime.now(timezone.utc).year,
        sender_name=escape(sender_name),
    )
    return f"Reset your {sender_name} password", html
