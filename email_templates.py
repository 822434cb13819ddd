# -*- coding: utf-8 -*-
# email_templates.py: RenewGuard email content (subject + HTML body)

from datetime import datetime

from jinja2 import DictLoader, Environment, select_autoescape

DATE_FORMAT = "%B %d, %Y"

_BASE = """<!DOCTYPE html>
<html>
<head>
<style>
  body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
  .header { background: {{ accent }}; color: white; padding: 30px; border-radius: 10px 10px 0 0; text-align: center; }
  .content { background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px; }
  .box { background: white; padding: 20px; margin: 20px 0; border-radius: 5px; }
  .footer { text-align: center; margin-top: 30px; color: #666; font-size: 12px; }
</style>
</head>
<body>
<div class="header"><h1>{% block title %}{% endblock %}</h1></div>
<div class="content">
{% block content %}{% endblock %}
</div>
<div class="footer"><p>This is an automated message from RenewGuard.</p></div>
</body>
</html>
"""

_EXPIRATION_WARNING = """{% extends "base.html" %}
{% block title %}Subscription Expiring Soon{% endblock %}
{% block content %}
<p>Hello,</p>
<div class="box">
  <p>Your subscription <strong>{{ name }}</strong> {{ remaining }}.</p>
  <p>Expiration date: <strong>{{ end_date }}</strong></p>
</div>
<p>Renew it before it lapses to avoid any interruption.</p>
{% endblock %}
"""

_CONFIRMATION = """{% extends "base.html" %}
{% block title %}Subscription Added{% endblock %}
{% block content %}
<p>Hello,</p>
<p><strong>{{ name }}</strong> is now tracked by RenewGuard.</p>
<div class="box">
  <p>Start date: <strong>{{ start_date }}</strong></p>
  <p>End date: <strong>{{ end_date }}</strong></p>
</div>
<p>We will email you before it expires.</p>
{% endblock %}
"""

_TEST_EMAIL = """{% extends "base.html" %}
{% block title %}SMTP Test{% endblock %}
{% block content %}
<p>Hi {{ name }},</p>
<p>If you can read this, RenewGuard email delivery is working.</p>
{% endblock %}
"""

env = Environment(
    loader=DictLoader({
        "base.html": _BASE,
        "expiration_warning.html": _EXPIRATION_WARNING,
        "subscription_confirmation.html": _CONFIRMATION,
        "test_email.html": _TEST_EMAIL,
    }),
    autoescape=select_autoescape(["html"]),
)


def _format_remaining(days_left: int) -> str:
    if days_left <= 0:
        return "expires today"
    if days_left == 1:
        return "expires tomorrow"
    return f"expires in {days_left} days"


def expiration_warning_subject(name: str, days_left: int) -> str:
    if days_left == 0:
        return f"🚨 URGENT: Your {name} subscription expires TODAY!"
    if days_left == 1:
        return f"⚠️ Your {name} subscription expires TOMORROW!"
    return f"⚠️ Your {name} subscription expires in {days_left} days"


def expiration_warning(name: str, days_left: int, end_date: datetime) -> tuple[str, str]:
    body = env.get_template("expiration_warning.html").render(
        accent="#e67e22",
        name=name,
        remaining=_format_remaining(days_left),
        end_date=end_date.strftime(DATE_FORMAT),
    )
    return expiration_warning_subject(name, days_left), body


def subscription_confirmation(name: str, start_date: datetime, end_date: datetime) -> tuple[str, str]:
    body = env.get_template("subscription_confirmation.html").render(
        accent="#27ae60",
        name=name,
        start_date=start_date.strftime(DATE_FORMAT),
        end_date=end_date.strftime(DATE_FORMAT),
    )
    return f"✅ {name} subscription added to RenewGuard", body


def smtp_test_email(name: str) -> tuple[str, str]:
    body = env.get_template("test_email.html").render(accent="#667eea", name=name)
    return "🧪 RenewGuard SMTP Test Email", body
