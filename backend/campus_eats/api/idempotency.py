"""Route class that gates mutating endpoints behind ``Idempotency-Key``.

Routers built with ``route_class=IdempotentRoute`` check the header on
POST/PUT/PATCH/DELETE. Requests without the header, or without a usable
bearer token, run normally. Otherwise the key is claimed before the endpoint
runs and the endpoint's 2xx response is stored for replay; a failed request
releases the key so the client can retry it.
"""

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from fastapi import Request, Response
from fastapi.routing import APIRoute

from campus_eats.auth import decode_access_token
from campus_eats.services.idempotency import IdempotencyService, hash_request

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotent-Replayed"
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _request_target(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def _bearer_user_id(request: Request):
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return decode_access_token(token.strip())


async def _release_quietly(service: IdempotencyService, user_id, key: str) -> None:
    try:
        await service.release(user_id, key)
    except Exception:
        logger.exception("Failed to release key %s (user %s)", key, user_id)


class IdempotentRoute(APIRoute):
    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        original_route_handler = super().get_route_handler()

        async def idempotent_route_handler(request: Request) -> Response:
            key = request.headers.get(IDEMPOTENCY_HEADER)
            if not key or request.method not in MUTATING_METHODS:
                return await original_route_handler(request)

            user_id = _bearer_user_id(request)
            if user_id is None:
                # The endpoint's auth dependency produces the 401.
                return await original_route_handler(request)

            service = IdempotencyService()
            fingerprint = hash_request(request.method, _request_target(request), await request.body())
            stored = await service.begin(user_id, key, fingerprint)
            if stored is not None:
                return Response(
                    content=stored.body,
                    status_code=stored.status_code,
                    media_type="application/json",
                    headers={REPLAY_HEADER: "true"},
                )

            try:
                response = await original_route_handler(request)
            except Exception:
                await service.release(user_id, key)
                raise

            body = getattr(response, "body", None)
            try:
                if 200 <= response.status_code < 300 and isinstance(body, bytes):
                    await service.complete(user_id, key, response.status_code, body)
                else:
                    await service.release(user_id, key)
            except Exception:
                # The endpoint already committed; its response stands.
                logger.exception("Failed to record outcome for key %s (user %s)", key, user_id)
                await _release_quietly(service, user_id, key)
            return response

        return idempotent_route_handler
