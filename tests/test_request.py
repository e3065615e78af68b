"""
Tests for the ASGI request wrapper, form parsing and uploads.
"""

import pytest

from pactum._datastructures import MultiDict, ParsedContentType
from pactum._uploads import FormData, UploadFile
from pactum.faults import UnsupportedMediaTypeFault
from pactum.request import (
    BadRequest,
    ClientDisconnect,
    MultipartParseError,
    PayloadTooLarge,
    Request,
    sanitize_filename,
)
from tests.conftest import make_multipart, make_receive, make_request, make_scope


# ============================================================================
# Basic Properties
# ============================================================================

class TestRequestProperties:

    def test_method_and_path(self):
        req = make_request(method="POST", path="/users/42")
        assert req.method == "POST"
        assert req.path == "/users/42"

    def test_query_params_keep_repeats_and_blanks(self):
        req = make_request(query_string="tag=a&tag=b&empty=")
        assert req.query_param("tag") == "a"
        assert req.query_params.get_all("tag") == ["a", "b"]
        assert req.query_param("empty") == ""
        assert req.query_param("missing", "x") == "x"

    def test_headers_are_case_insensitive(self):
        req = make_request(headers=[("X-Trace-Id", "abc"), ("Accept", "application/xml")])
        assert req.header("x-trace-id") == "abc"
        assert req.header("ACCEPT") == "application/xml"
        assert req.header("missing") is None

    def test_cookies(self):
        req = make_request(headers=[("cookie", "session=s1; theme=dark")])
        assert req.cookie("session") == "s1"
        assert req.cookies == {"session": "s1", "theme": "dark"}

    def test_path_params_from_scope_and_state(self):
        req = make_request(path_params={"id": "42", "org": "acme"})
        req.state["path_params"] = {"org": "other"}
        assert req.path_param("id") == "42"
        assert req.path_param("org") == "other"
        assert req.path_param("missing") is None

    def test_content_length(self):
        assert make_request(headers=[("content-length", "12")]).content_length() == 12
        assert make_request(headers=[("content-length", "x")]).content_length() is None


# ============================================================================
# Body
# ============================================================================

class TestRequestBody:

    @pytest.mark.asyncio
    async def test_body_is_cached(self):
        scope = make_scope(method="POST")
        req = Request(scope, make_receive(chunks=[b"hello ", b"world"]))
        assert await req.body() == b"hello world"
        assert await req.body() == b"hello world"

    @pytest.mark.asyncio
    async def test_body_limit(self):
        req = make_request(method="POST", body=b"x" * 20, max_body_size=10)
        with pytest.raises(PayloadTooLarge) as exc_info:
            await req.body()
        assert exc_info.value.status == 413

    @pytest.mark.asyncio
    async def test_client_disconnect(self):
        async def receive():
            return {"type": "http.disconnect"}

        req = Request(make_scope(method="POST"), receive)
        with pytest.raises(ClientDisconnect):
            await req.body()


# ============================================================================
# Forms
# ============================================================================

class TestForms:

    @pytest.mark.asyncio
    async def test_urlencoded(self):
        req = make_request(
            method="POST",
            headers=[("content-type", "application/x-www-form-urlencoded")],
            body=b"name=Ada&tag=a&tag=b",
        )
        form = await req.form_data()
        assert form.get_field("name") == "Ada"
        assert form.fields.get_all("tag") == ["a", "b"]
        assert form.files == {}

    @pytest.mark.asyncio
    async def test_too_many_fields(self):
        req = make_request(
            method="POST",
            headers=[("content-type", "application/x-www-form-urlencoded")],
            body=b"a=1&b=2&c=3",
            max_field_count=2,
        )
        with pytest.raises(BadRequest):
            await req.form()

    @pytest.mark.asyncio
    async def test_form_data_rejects_other_types(self):
        req = make_request(method="POST", headers=[("content-type", "application/json")], body=b"{}")
        with pytest.raises(UnsupportedMediaTypeFault):
            await req.form_data()

    @pytest.mark.asyncio
    async def test_multipart_fields_and_files(self):
        body, content_type = make_multipart(
            {"caption": "hello"},
            [("file", "../../etc/avatar.png", b"\x89PNG", "image/png")],
        )
        req = make_request(method="POST", headers=[("content-type", content_type)], body=body)

        form = await req.form_data()

        assert form.get_field("caption") == "hello"
        upload = form.get_file("file")
        assert upload.filename == "avatar.png"
        assert upload.content_type == "image/png"
        assert upload.in_memory
        assert await upload.read() == b"\x89PNG"

    @pytest.mark.asyncio
    async def test_large_upload_spills_to_disk(self, tmp_path):
        content = b"z" * 4096
        body, content_type = make_multipart(files=[("file", "big.bin", content, "application/octet-stream")])
        req = make_request(
            method="POST",
            headers=[("content-type", content_type)],
            body=body,
            form_memory_threshold=1024,
            upload_tempdir=tmp_path,
        )

        upload = (await req.multipart()).get_file("file")

        assert not upload.in_memory
        assert upload.size == 4096
        assert await upload.read() == content
        assert list(tmp_path.iterdir())

        await req.cleanup()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_upload_size_limit(self):
        body, content_type = make_multipart(files=[("file", "big.bin", b"z" * 100, "application/octet-stream")])
        req = make_request(method="POST", headers=[("content-type", content_type)], body=body, max_file_size=10)
        with pytest.raises(PayloadTooLarge):
            await req.multipart()

    @pytest.mark.asyncio
    async def test_multipart_without_boundary(self):
        req = make_request(method="POST", headers=[("content-type", "multipart/form-data")], body=b"")
        with pytest.raises(MultipartParseError):
            await req.multipart()


class TestSanitizeFilename:

    @pytest.mark.parametrize("raw, expected", [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\a.txt", "a.txt"),
        ('bad<name>?.txt', "bad_name__.txt"),
        ("", "unnamed"),
    ])
    def test_sanitize(self, raw, expected):
        assert sanitize_filename(raw) == expected


# ============================================================================
# Data structures
# ============================================================================

class TestDataStructures:

    def test_multidict(self):
        md = MultiDict([("a", "1"), ("a", "2"), ("b", "3")])
        assert md.get("a") == "1"
        assert md.get_all("a") == ["1", "2"]
        assert md.items_list() == [("a", "1"), ("a", "2"), ("b", "3")]
        assert md.get_all("missing") == []

    def test_parsed_content_type(self):
        parsed = ParsedContentType.parse('Multipart/Form-Data; boundary="xyz"; charset=latin-1')
        assert parsed.media_type == "multipart/form-data"
        assert parsed.boundary == "xyz"
        assert parsed.charset == "latin-1"
        assert ParsedContentType.parse(None) is None

    @pytest.mark.asyncio
    async def test_upload_save_and_form_cleanup(self, tmp_path):
        upload = UploadFile.from_bytes("a.txt", b"data", "text/plain")
        dest = await upload.save(tmp_path / "out" / "a.txt")
        assert dest.read_bytes() == b"data"
        with pytest.raises(FileExistsError):
            await upload.save(dest)

        form = FormData(files={"f": [upload]})
        assert form.get_all_files("f") == [upload]
        await form.cleanup()
