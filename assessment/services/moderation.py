# assessment/services/moderation.py
"""Screening of free-text feedback before it is stored.

A local screen always runs. When ``MODERATION_PROXY_URL`` is set, the text is
also posted to that service, which answers ``{"allowed"|"ok": bool, "reason": str}``.
"""
import logging
import re

import requests
from django.conf import settings

from monitoring.exceptions import ServiceError

logger = logging.getLogger(__name__)

MIN_LENGTH = 10
EMAIL_RE = re.compile(r'\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b', re.IGNORECASE)
LINK_RE = re.compile(r'(https?://|www\.)', re.IGNORECASE)
PHONE_RE = re.compile(r'\d{9,11}')
PROFANITY_RE = re.compile(r'\b(địt|dm|đmm|c?mm|cặc|đéo|lồn|đụ|fuck|shit)\b', re.IGNORECASE)

TEACHER_BLOCKLIST = [
    re.compile(r'đồ ngu|đồ điên|đồ khùng|mày|tao|đồ rác|vô học|đồ mất dạy', re.IGNORECASE),
    re.compile(r'tự sát|tự tử|kết liễu|giết', re.IGNORECASE),
    re.compile(r'kiện tụng|tố cáo (mày|bạn|thằng)', re.IGNORECASE),
]

FEEDBACK_KINDS = ('course', 'faculty')


class ProxyUnavailable(Exception):
    pass


def local_screen(text):
    """Return ``(ok, reason)`` for a student's feedback text."""
    clean = str(text or '').strip()
    if len(clean) < MIN_LENGTH:
        return False, 'Content is too short'
    # phone numbers written with spaces or dots still count
    if PHONE_RE.search(re.sub(r'\D', '', clean)):
        return False, 'Do not include phone numbers or personal data'
    if EMAIL_RE.search(clean):
        return False, 'Do not include email addresses'
    if LINK_RE.search(clean):
        return False, 'Do not include links'
    if PROFANITY_RE.search(clean):
        return False, 'Inappropriate language'
    return True, 'OK'


def blocklist_check(message):
    text = str(message or '').strip()
    if not text:
        return False, 'empty'
    if any(pattern.search(text) for pattern in TEACHER_BLOCKLIST):
        return False, 'contains banned phrases'
    return True, 'OK'


def ask_proxy(payload):
    """Post to the moderation proxy. Returns ``(ok, reason)`` or ``None`` when unconfigured."""
    url = settings.MODERATION_PROXY_URL
    if not url:
        return None

    try:
        response = requests.post(url, json=payload, timeout=settings.MODERATION_PROXY_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Moderation proxy call failed: {e}")
        raise ProxyUnavailable(str(e))

    if not isinstance(data, dict):
        raise ProxyUnavailable('Proxy returned an unexpected body')
    verdict = data.get('allowed', data.get('ok'))
    if not isinstance(verdict, bool):
        raise ProxyUnavailable('Proxy verdict is missing')
    reason = data.get('reason')
    if not isinstance(reason, str):
        reason = 'OK' if verdict else 'Content is not appropriate'
    return verdict, reason


def moderate_student_feedback(text, kind, target):
    text = str(text or '').strip()
    kind = str(kind or '').strip().lower()
    target = str(target or '').strip()
    if not text or kind not in FEEDBACK_KINDS or not target:
        raise ServiceError('text, kind (course|faculty) and target are required')

    ok, reason = local_screen(text)
    if not ok:
        return ok, reason

    try:
        verdict = ask_proxy({'text': text, 'kind': kind, 'target': target})
    except ProxyUnavailable as e:
        raise ServiceError(f'Moderation service unavailable: {e}', 502)
    return verdict if verdict is not None else (ok, reason)


def moderate_teacher_message(message):
    message = str(message or '').strip()
    if not message:
        raise ServiceError('message is required')

    try:
        verdict = ask_proxy({'text': message, 'kind': 'student'})
    except ProxyUnavailable:
        verdict = None
    return verdict if verdict is not None else blocklist_check(message)
