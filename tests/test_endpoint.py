"""
Tests for the endpoint pipeline: bind, validate, handle, render.
"""

import logging
from dataclasses import dataclass
from typing import Annotated

import orjson
import pytest

from pactum.contract.endpoint import Endpoint
from pactum.contract.markers import Meta, Path, Query, Redirect, Stream, Void
from pactum.faults import HTTPFault
from pactum.response import ResponseCookie

from tests.conftest import RecordingSend, make_receive, make_request, make_scope


@dataclass
class GetUser:
    id: Annotated[str, Path("id"), Meta(min_length=2)]
    page: Annotated[int, Query("page", default="1")] = 0


@dataclass
class User:
    id: str = ""
    name: str = ""
    page: int = 0


@dataclass
class CreateUser:
    name: Annotated[str, Meta(min_length=3)] = ""
    password: str = ""
    confirm: str = ""

    def validate(self):
        if self.password != self.confirm:
            raise ValueError("passwords do not match")


@dataclass
class Created:
    id: str = ""

    def status_code(self):
        return 201

    def set_headers(self, headers):
        headers.set("Location", f"/users/{self.id}")

    def cookies(self):
        return [ResponseCookie(name="last", value=self.id)]


async def get_user(req: GetUser) -> User:
    return User(id=req.id, name="Ada", page=req.page)


def json_of(response):
    return orjson.loads(response.body)


# ============================================================================
# Happy path
# ============================================================================


@pytest.mark.asyncio
async def test_handler_result_is_encoded():
    endpoint = Endpoint(get_user, GetUser, User)
    response = await endpoint(make_request(path_params={"id": "42"}))

    assert response.status == 200
    assert response.media_type == "application/json"
    assert json_of(response) == {"id": "42", "name": "Ada", "page": 1}


@pytest.mark.asyncio
async def test_sync_handlers_are_supported():
    endpoint = Endpoint(lambda req: User(id=req.id), GetUser, User)
    response = await endpoint(make_request(path_params={"id": "42"}))
    assert json_of(response)["id"] == "42"


@pytest.mark.asyncio
async def test_accept_selects_xml():
    endpoint = Endpoint(get_user, GetUser, User)
    response = await endpoint(make_request(path_params={"id": "42"}, headers=[("accept", "application/xml")]))

    assert response.media_type == "application/xml"
    assert b"<User>" in response.body


@pytest.mark.asyncio
async def test_declared_status():
    endpoint = Endpoint(lambda req: User(name=req.name), CreateUser, User, status=201)
    request = make_request(method="POST", body=b'{"name": "Ada"}')
    response = await endpoint(request)
    assert response.status == 201


@pytest.mark.asyncio
async def test_void_response_is_204():
    endpoint = Endpoint(lambda req: Void(), GetUser, Void)
    response = await endpoint(make_request(path_params={"id": "42"}))
    assert response.status == 204
    assert response.body == b""


@pytest.mark.asyncio
async def test_none_response_uses_declared_status():
    endpoint = Endpoint(lambda req: None, Void, Void, status=202)
    response = await endpoint(make_request())
    assert response.status == 202


@pytest.mark.asyncio
async def test_redirect_response():
    endpoint = Endpoint(lambda req: Redirect("/login"), Void, Redirect)
    response = await endpoint(make_request())
    assert response.status == 302
    assert response.headers.get("location") == "/login"


@pytest.mark.asyncio
async def test_stream_response_bypasses_codecs():
    endpoint = Endpoint(lambda req: Stream(b"a,b\n", content_type="text/csv"), Void, Stream)
    response = await endpoint(make_request())
    assert response.status == 200
    assert response.media_type == "text/csv"
    assert response.body == b"a,b\n"


@pytest.mark.asyncio
async def test_response_capabilities():
    endpoint = Endpoint(lambda req: Created(id="u1"), Void, Created)
    response = await endpoint(make_request())

    assert response.status == 201
    assert response.headers.get("location") == "/users/u1"
    assert response.headers.get_all("set-cookie")[0].startswith("last=u1")


# ============================================================================
# Failures
# ============================================================================


@pytest.mark.asyncio
async def test_bind_failure_is_problem():
    endpoint = Endpoint(get_user, GetUser, User)
    response = await endpoint(make_request(path_params={"id": "42"}, query_string="page=x"))

    assert response.status == 400
    assert response.media_type == "application/problem+json"
    problem = json_of(response)
    assert problem["title"] == "Bad Request"
    assert problem["detail"].startswith("bind query: page:")


@pytest.mark.asyncio
async def test_validation_failure_is_problem():
    called = []
    endpoint = Endpoint(lambda req: called.append(req), GetUser, User)
    response = await endpoint(make_request(path_params={"id": "4"}))

    assert called == []
    assert response.status == 400
    assert json_of(response) == {
        "type": "about:blank",
        "title": "Validation Failed",
        "status": 400,
        "detail": "1 constraint violation(s)",
        "errors": [{"field": "id", "message": "must be at least 2 characters", "value": "4"}],
    }


@pytest.mark.asyncio
async def test_self_validator():
    endpoint = Endpoint(lambda req: User(), CreateUser, User)
    request = make_request(method="POST", body=b'{"name": "Ada", "password": "a", "confirm": "b"}')
    response = await endpoint(request)

    assert response.status == 400
    assert json_of(response)["detail"] == "passwords do not match"


@pytest.mark.asyncio
async def test_global_validator_runs_after_self_validation():
    seen = []

    def reject_admin(req):
        seen.append(req.name)
        if req.name == "admin":
            return HTTPFault(403, "reserved name")
        return None

    endpoint = Endpoint(lambda req: User(name=req.name), CreateUser, User, validator=reject_admin)

    response = await endpoint(make_request(method="POST", body=b'{"name": "admin"}'))
    assert response.status == 403
    assert json_of(response)["detail"] == "reserved name"

    response = await endpoint(make_request(method="POST", body=b'{"name": "alice"}'))
    assert response.status == 200
    assert seen == ["admin", "alice"]


@pytest.mark.asyncio
async def test_not_acceptable_short_circuits_handler():
    called = []
    endpoint = Endpoint(lambda req: called.append(req), GetUser, User)
    response = await endpoint(make_request(path_params={"id": "42"}, headers=[("accept", "text/csv")]))

    assert response.status == 406
    assert called == []


@pytest.mark.asyncio
async def test_handler_fault():
    def missing(req):
        raise HTTPFault(404, "user not found")

    response = await Endpoint(missing, GetUser, User)(make_request(path_params={"id": "42"}))
    assert response.status == 404
    assert json_of(response)["detail"] == "user not found"


@pytest.mark.asyncio
async def test_fault_log_level_follows_severity(caplog):
    caplog.set_level(logging.DEBUG, logger="pactum.endpoint")

    def unavailable(req):
        raise HTTPFault(503, "try later")

    await Endpoint(get_user, GetUser, User)(make_request(path_params={"id": "42"}, query_string="page=x"))
    await Endpoint(unavailable, GetUser, User)(make_request(path_params={"id": "42"}))

    levels = [record.levelno for record in caplog.records if record.name == "pactum.endpoint"]
    assert levels == [logging.INFO, logging.ERROR]


@pytest.mark.asyncio
async def test_unexpected_error_is_500(caplog):
    def broken(req):
        raise RuntimeError("database exploded")

    response = await Endpoint(broken, GetUser, User)(make_request(path_params={"id": "42"}))

    assert response.status == 500
    assert "database exploded" not in response.body.decode()
    assert "Unhandled error" in caplog.text


# ============================================================================
# ASGI
# ============================================================================


@pytest.mark.asyncio
async def test_asgi_entry_point():
    endpoint = Endpoint(get_user, GetUser, User)
    send = RecordingSend()
    scope = make_scope(path="/users/42", path_params={"id": "42"})

    await endpoint.asgi(scope, make_receive(), send)

    assert send.status == 200
    assert send.headers["content-type"] == "application/json"
    assert orjson.loads(send.body)["id"] == "42"
