from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return request_id_var.get()


@contextmanager
def request_context(request_id: str | None = None) -> Iterator[str]:
    """
    Bind a correlation id for the duration of one caller request.

    Content-generation and submission workflows wrap their calls into this
    package with it so every log line of one request shares `request_id`.
    """
    rid = (str(request_id).strip() if request_id else "") or str(uuid.uuid4())
    token = request_id_var.set(rid)
    try:
        yield rid
    finally:
        request_id_var.reset(token)
