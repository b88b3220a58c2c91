# grrrignote/core/request_ip.py
"""
從 proxy header 取出 client IP（只給 attempt ledger 用）。
TRUST_PROXY_IP_HEADERS 未開啟時一律回傳 None：header 可由 client 任意偽造。
"""
from __future__ import annotations

import ipaddress
from typing import Iterable, Optional

from fastapi import Request


def _normalize_candidate(raw: str) -> Optional[str]:
    candidate = (raw or "").strip()
    if not candidate:
        return None

    if candidate.lower().startswith("for="):
        candidate = candidate[4:].strip()
    candidate = candidate.strip('"').strip("'")

    if candidate.startswith("[") and "]" in candidate:
        # [2001:db8::1]:443
        candidate = candidate[1 : candidate.index("]")]
    elif "." in candidate and candidate.count(":") == 1:
        # 203.0.113.7:8080
        candidate = candidate.split(":", 1)[0]

    if candidate.startswith("::ffff:"):
        candidate = candidate[len("::ffff:") :]
    if "%" in candidate:
        candidate = candidate.split("%", 1)[0]

    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def _first_valid(candidates: Iterable[str]) -> Optional[str]:
    for candidate in candidates:
        ip = _normalize_candidate(candidate)
        if ip:
            return ip
    return None


def trusted_client_ip(headers, trust_proxy_headers: bool) -> Optional[str]:
    """
    依序查 X-Forwarded-For → X-Real-IP → Forwarded，回傳第一個合法 IP。
    """
    if not trust_proxy_headers:
        return None

    from_forwarded_for = _first_valid((headers.get("x-forwarded-for") or "").split(","))
    if from_forwarded_for:
        return from_forwarded_for

    real_ip = _normalize_candidate(headers.get("x-real-ip") or "")
    if real_ip:
        return real_ip

    forwarded = headers.get("forwarded") or ""
    parts = [p for chunk in forwarded.split(",") for p in chunk.split(";")]
    return _first_valid(parts)


def get_client_ip(request: Request) -> Optional[str]:
    settings = request.app.state.settings
    return trusted_client_ip(request.headers, settings.TRUST_PROXY_IP_HEADERS)
