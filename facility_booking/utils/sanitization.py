"""
Security & Sanitization Utilities

Helpers applied to free text submitted by citizens and staff
(applicant names, purposes, remarks) before it is stored and later
rendered by dashboards.
"""

import re
from typing import Optional

_SCRIPT_TAG = re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL)
_STYLE_TAG = re.compile(r'<style[^>]*>.*?</style>', re.IGNORECASE | re.DOTALL)
_EVENT_HANDLER = re.compile(r'\bon\w+\s*=\s*(["\'][^"\']*["\']|[^\s>]+)', re.IGNORECASE)
_JS_URL = re.compile(r'javascript\s*:', re.IGNORECASE)
_WHITESPACE = re.compile(r'[ \t]+')


def strip_dangerous_tags(content: Optional[str]) -> Optional[str]:
    """
    Remove script/style tags, inline event handlers and javascript: URLs.
    """
    if not content:
        return content

    content = _SCRIPT_TAG.sub('', content)
    content = _STYLE_TAG.sub('', content)
    content = _EVENT_HANDLER.sub('', content)
    content = _JS_URL.sub('', content)
    return content


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip dangerous markup, trim, and collapse runs of spaces."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = strip_dangerous_tags(value)
    return _WHITESPACE.sub(' ', value).strip()


def normalize_contact_number(value: Optional[str]) -> Optional[str]:
    """Keep digits and a leading '+': '+63 917-123-4567' -> '+639171234567'."""
    if value is None:
        return None
    value = value.strip()
    prefix = "+" if value.startswith("+") else ""
    return prefix + re.sub(r'\D', '', value)
