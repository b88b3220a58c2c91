# grrrignote/api/pages/common.py
from typing import Any, Dict
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse


def see_other(path: str, **params: Any) -> RedirectResponse:
    """form action 一律以 303 導向，狀態碼 / 錯誤碼放在 query string。"""
    query = urlencode({k: v for k, v in params.items() if v not in (None, "")})
    return RedirectResponse(f"{path}?{query}" if query else path, status_code=303)


async def read_form(request: Request) -> Dict[str, Any]:
    form = await request.form()
    return dict(form)


def link(base_url: str, path: str, **params: Any) -> str:
    """email 用的絕對網址；base_url 來自 settings.app_base_url()。"""
    return f"{base_url}{path}?{urlencode(params)}" if params else f"{base_url}{path}"
