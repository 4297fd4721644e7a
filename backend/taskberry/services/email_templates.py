"""Email templates for account notifications.

Each template has a subject, an HTML body and a plain-text body, all Jinja2
strings rendered with the same variables.
"""

from typing import Any

from jinja2 import BaseLoader, Environment, select_autoescape

# HTML bodies are autoescaped; subjects and text bodies are rendered as-is
_html_env = Environment(loader=BaseLoader(), autoescape=select_autoescape(default=True))
_text_env = Environment(loader=BaseLoader(), autoescape=False)


def render_template(template: dict[str, str], variables: dict[str, Any]) -> dict[str, str]:
    """Render a template dict into ``subject``, ``html`` and ``text``."""
    return {
        "subject": _text_env.from_string(template["subject"]).render(**variables).strip(),
        "html": _html_env.from_string(template["html"]).render(**variables),
        "text": _text_env.from_string(template["text"]).render(**variables),
    }


def role_display(role: str) -> str:
    """``super_admin`` -> ``Super Admin``."""
    return " ".join(word.capitalize() for word in role.split("_"))


_FOOTER_HTML = """
  <div style="padding: 20px; text-align: center; color: #666; font-size: 12px;">
    <p>This is an automated email from {{ app_name }}. Please do not reply.</p>
    <p>&copy; {{ year }} {{ app_name }}. All rights reserved.</p>
  </div>
"""


PASSWORD_RESET = {
    "subject": "Reset your {{ app_name }} password",
    "html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #f0f0f0; padding: 20px; text-align: center;">
    <h1 style="color: #333;">{{ app_name }}</h1>
  </div>
  <div style="padding: 20px; border: 1px solid #ddd; background-color: #fff;">
    <h2>Password Reset Request</h2>
    <p>We received a request to reset the password for your {{ app_name }} account.</p>
    <p>This link expires in {{ expires_minutes }} minutes.</p>
    <p style="text-align: center; margin: 30px 0;">
      <a href="{{ reset_url }}" style="background-color: #4f46e5; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px;">Reset Password</a>
    </p>
    <p>If you didn't request a password reset, you can safely ignore this email.</p>
    <p style="word-break: break-all; color: #666;">{{ reset_url }}</p>
  </div>
""" + _FOOTER_HTML + """
</div>
""",
    "text": """Reset your {{ app_name }} password by visiting:
{{ reset_url }}

This link expires in {{ expires_minutes }} minutes. If you didn't request a
password reset, you can ignore this email.
""",
}


APPROVAL = {
    "subject": "Your {{ app_name }} account has been approved",
    "html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #667eea; color: white; padding: 30px; text-align: center;">
    <h1>Welcome to {{ app_name }}!</h1>
    <p>Your account has been approved</p>
  </div>
  <div style="background: #f9f9f9; padding: 30px;">
    <h2>Hello {{ name }},</h2>
    <p>Your account has been approved by {{ approved_by }}.</p>
    <div style="background: white; padding: 20px; border-left: 4px solid #667eea;">
      <p><strong>Role:</strong> {{ role_display }}</p>
      {% if supervisor %}<p><strong>Supervisor:</strong> {{ supervisor }}</p>{% endif %}
      {% if manager %}<p><strong>Manager:</strong> {{ manager }}</p>{% endif %}
    </div>
    <p style="text-align: center; margin: 30px 0;">
      <a href="{{ login_url }}" style="background: #667eea; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px;">Log in</a>
    </p>
    <p>If you have questions, contact your administrator.</p>
  </div>
""" + _FOOTER_HTML + """
</div>
""",
    "text": """Hello {{ name }},

Your {{ app_name }} account has been approved by {{ approved_by }}.

Role: {{ role_display }}
{% if supervisor %}Supervisor: {{ supervisor }}
{% endif %}{% if manager %}Manager: {{ manager }}
{% endif %}
Log in at {{ login_url }}
""",
}


REJECTION = {
    "subject": "{{ app_name }} account application update",
    "html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #f8f9fa; padding: 30px; text-align: center; border-bottom: 3px solid #dc3545;">
    <h1>{{ app_name }} Application Status</h1>
  </div>
  <div style="background: #f9f9f9; padding: 30px;">
    <h2>Hello {{ name }},</h2>
    <p>Thank you for your interest in {{ app_name }}. We're unable to approve your account application at this time.</p>
    {% if reason %}
    <div style="background: white; padding: 20px; border-left: 4px solid #dc3545;">
      <h3>Reason:</h3>
      <p>{{ reason }}</p>
    </div>
    {% endif %}
    <p>If you believe this is an error, please contact the administrator at <strong>{{ admin_contact }}</strong>.</p>
  </div>
""" + _FOOTER_HTML + """
</div>
""",
    "text": """Hello {{ name }},

Thank you for your interest in {{ app_name }}. We're unable to approve your
account application at this time.
{% if reason %}
Reason: {{ reason }}
{% endif %}
If you believe this is an error, please contact the administrator at
{{ admin_contact }}.
""",
}
