"""
Static HTML pages shown after following an emailed verification link.

These are terminal, human-facing responses: no scripts, no redirects,
no technical detail.
"""

from html import escape

_PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
           background: #f5f5f5; display: flex; align-items: center;
           justify-content: center; min-height: 100vh; margin: 0; }}
    .card {{ background: #fff; border-radius: 16px; padding: 48px 40px;
            max-width: 420px; text-align: center; }}
    h1 {{ color: {color}; font-size: 24px; margin: 0 0 12px; }}
    p {{ color: #555; font-size: 15px; line-height: 1.6; margin: 0; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>{title}</h1>
    <p>{message}</p>
  </div>
</body>
</html>
"""


def _render(title: str, message: str, color: str) -> str:
    return _PAGE.format(title=escape(title), message=escape(message), color=color)


def verified_page() -> str:
    return _render(
        "Email verified",
        "Your account is now active. You can return to the app and log in.",
        "#2f9e44",
    )


def already_verified_page() -> str:
    return _render(
        "Already verified",
        "This email address has already been confirmed. You can log in.",
        "#2f9e44",
    )


def invalid_link_page() -> str:
    return _render(
        "Link invalid or expired",
        "This verification link is invalid or has expired. "
        "Please request a new one from the app.",
        "#e03131",
    )


def error_page() -> str:
    return _render(
        "Something went wrong",
        "We could not verify your email right now. Please try again later.",
        "#e03131",
    )
