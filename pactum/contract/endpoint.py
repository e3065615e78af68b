"""
Typed endpoint pipeline.

An ``Endpoint`` wraps a handler ``(request_value) -> response_value`` and
runs it between the binder, the constraint validator and the negotiated
response codec::

    async def get_user(req: GetUser) -> User:
        ...

    endpoint = Endpoint(get_user, GetUser, User)
    response = await endpoint(request)

Every failure on the way becomes an RFC 9457 problem document.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, runtime_checkable

import orjson

from .._datastructures import MutableHeaders
from ..config import EngineConfig
from ..faults import Fault, HTTPFault, PROBLEM_CONTENT_TYPE, Severity, problem_details
from ..request import Request
from ..response import Response, ResponseCookie
from .binder import bind, default_codecs
from .classify import classify
from .codecs import CodecEntry, CodecRegistry
from .markers import Redirect, Stream, Void
from .validator import validate

logger = logging.getLogger("pactum.endpoint")

Handler = Callable[[Any], Any]
GlobalValidator = Callable[[Any], Any]

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


# ═══════════════════════════════════════════════════════════════════════════
#  Capability protocols
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class SelfValidator(Protocol):
    """Request value that validates itself after constraint checks."""

    def validate(self) -> Any: ...


@runtime_checkable
class StatusCoder(Protocol):
    """Response value that picks its own status code."""

    def status_code(self) -> int: ...


@runtime_checkable
class HeaderSetter(Protocol):
    """Response value that writes extra response headers."""

    def set_headers(self, headers: MutableHeaders) -> None: ...


@runtime_checkable
class CookieSetter(Protocol):
    """Response value that emits cookies."""

    def cookies(self) -> Iterable[ResponseCookie]: ...


# ═══════════════════════════════════════════════════════════════════════════
#  Endpoint
# ═══════════════════════════════════════════════════════════════════════════

class Endpoint:
    """
    One handler with its request and response contract.

    Args:
        handler: Sync or async callable taking the bound request value
        request_type: Request dataclass (or ``Void``)
        response_type: Response type (or ``Void``), used for documentation
        status: Success status; ``Void`` responses default to 204
        codecs: Codec registry for negotiation and body decoding
        validator: Optional global validator run after self-validation
    """

    def __init__(
        self,
        handler: Handler,
        request_type: Any = Void,
        response_type: Any = Void,
        *,
        status: int = 0,
        codecs: Optional[CodecRegistry] = None,
        validator: Optional[GlobalValidator] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.handler = handler
        self.request_type = request_type
        self.response_type = response_type
        self.status = status
        self.config = config or EngineConfig()
        if codecs is None:
            codecs = CodecRegistry.from_config(config) if config is not None else default_codecs()
        self.codecs = codecs
        self.validator = validator
        self.shape = classify(request_type)

    async def __call__(self, request: Request) -> Response:
        try:
            return await self._run(request)
        except Fault as fault:
            logger.log(
                _LOG_LEVELS.get(fault.severity, logging.ERROR),
                "%s %s failed: [%s] %s: %s",
                request.method, request.path, fault.domain.value.upper(), fault.code, fault.message,
            )
            return self.problem_response(fault)
        except Exception:
            logger.exception("Unhandled error in %s %s", request.method, request.path)
            return self.problem_response(
                HTTPFault(500, "internal server error")
            )
        finally:
            await request.cleanup()

    async def _run(self, request: Request) -> Response:
        encoder = self.codecs.negotiate_encoder(request.header("accept"))

        value = await bind(self.request_type, request, codecs=self.codecs, shape=self.shape)

        fault = validate(value)
        if fault is not None:
            raise fault

        if isinstance(value, SelfValidator):
            await _run_validator(value.validate)

        if self.validator is not None:
            await _run_validator(self.validator, value)

        result = await _maybe_await(self.handler(value))
        return self.render(result, encoder)

    # ── Response rendering ───────────────────────────────────────────────

    def render(self, result: Any, encoder: CodecEntry) -> Response:
        """Turn a handler result into a response."""
        if isinstance(result, Redirect):
            return Response(b"", status=result.status or 302, headers={"location": result.url})

        if isinstance(result, Stream):
            return Response(
                result.body,
                status=result.status or self.status or 200,
                media_type=result.content_type,
            )

        if result is None or isinstance(result, Void):
            response = Response(b"", status=self.status or 204)
            self._apply_capabilities(result, response)
            return response

        response = Response(encoder.encode(result), status=self.status or 200, media_type=encoder.content_type)
        self._apply_capabilities(result, response)
        return response

    def _apply_capabilities(self, result: Any, response: Response) -> None:
        if isinstance(result, CookieSetter) and callable(result.cookies):
            for cookie in result.cookies():
                response.set_cookie(cookie)
        if isinstance(result, HeaderSetter) and callable(result.set_headers):
            result.set_headers(response.headers)
        if isinstance(result, StatusCoder) and callable(result.status_code):
            response.status = result.status_code()

    @staticmethod
    def problem_response(fault: Fault) -> Response:
        return Response(
            orjson.dumps(problem_details(fault)),
            status=fault.status,
            media_type=PROBLEM_CONTENT_TYPE,
        )

    # ── ASGI ─────────────────────────────────────────────────────────────

    async def asgi(self, scope: Dict[str, Any], receive: Callable, send: Callable) -> None:
        """Serve the endpoint directly as an ASGI application."""
        request = Request(scope, receive, send, **self.config.request_options())
        response = await self(request)
        await response(scope, receive, send)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def _run_validator(func: Callable, *args: Any) -> None:
    """
    Run a validator. It may raise, or return an error, ``False`` or
    ``None``. ``ValueError`` and returned exceptions answer 400.
    """
    try:
        outcome = await _maybe_await(func(*args))
    except Fault:
        raise
    except ValueError as exc:
        raise HTTPFault(400, str(exc)) from exc

    if outcome is None or outcome is True:
        return
    if isinstance(outcome, Fault):
        raise outcome
    if isinstance(outcome, BaseException):
        raise HTTPFault(400, str(outcome)) from outcome
    if outcome is False:
        raise HTTPFault(400, "request rejected by validator")
