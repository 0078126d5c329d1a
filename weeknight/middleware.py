import secrets
import time

from fastapi import Request

TRACE_HEADER = "x-trace-id"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    digits = ""
    while n:
        n, r = divmod(n, 36)
        digits = _BASE36[r] + digits
    return digits or "0"


def generate_trace_id() -> str:
    """wn-<base36 epoch ms>-<8 hex>"""
    return f"wn-{_base36(int(time.time() * 1000))}-{secrets.token_hex(4)}"


def get_trace_id(request: Request) -> str | None:
    return getattr(request.state, "trace_id", None)


async def trace_id_middleware(request: Request, call_next):
    trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
    request.state.trace_id = trace_id
    response = await call_next(request)
    response.headers[TRACE_HEADER] = trace_id
    return response
