"""Tests for restrun/assembler.py request assembly."""

import random
from pathlib import Path

import pytest

from restrun.assembler import (
    MultipartPart,
    RequestAssembler,
    build_multipart_body,
    join_base_url,
    load_external_body,
    load_static_body,
    parse_multipart_body,
)
from restrun.config import ClientConfig
from restrun.errors import ExternalBodyError, MultipartBodyError
from restrun.models import Request
from restrun.variables import RequestScopeContext, ScopeChain


def make_assembler(tmp_path: Path, config: ClientConfig = None, **chain_kwargs) -> RequestAssembler:
    chain_kwargs.setdefault("environ", {})
    chain = ScopeChain(rng=random.Random(3), **chain_kwargs)
    return RequestAssembler(chain, config or ClientConfig(), tmp_path)


class TestAssemble:
    """Tests for RequestAssembler.assemble."""

    def test_substitutes_url_headers_and_body(self, tmp_path):
        assembler = make_assembler(tmp_path, programmatic={"host": "example.com", "token": "t0k"})
        request = Request(
            method="POST",
            raw_url="https://{{host}}/items",
            headers=[("Authorization", "Bearer {{token}}")],
            raw_body='{"host": "{{host}}"}',
        )
        prepared = assembler.assemble(request)
        assert prepared.url == "https://example.com/items"
        assert prepared.headers == [("Authorization", "Bearer t0k")]
        assert prepared.body == b'{"host": "example.com"}'
        assert prepared.source is request

    def test_uuid_shared_between_url_header_and_body(self, tmp_path):
        """One request context means one value per invocation."""
        assembler = make_assembler(tmp_path)
        request = Request(
            method="POST",
            raw_url="https://example.com/{{$uuid}}",
            headers=[("X-Id", "{{$uuid}}")],
            raw_body="{{$uuid}}",
        )
        prepared = assembler.assemble(request, RequestScopeContext(label="r"))
        value = prepared.headers[0][1]
        assert prepared.url.endswith("/" + value)
        assert prepared.body == value.encode("utf-8")

    def test_sibling_requests_get_fresh_values(self, tmp_path):
        assembler = make_assembler(tmp_path)
        request = Request(method="GET", raw_url="https://example.com/{{$uuid}}")
        first = assembler.assemble(request, RequestScopeContext())
        second = assembler.assemble(request, RequestScopeContext())
        assert first.url != second.url

    def test_empty_body_is_none(self, tmp_path):
        prepared = make_assembler(tmp_path).assemble(Request("GET", "https://example.com"))
        assert prepared.body is None

    def test_base_url_and_default_headers(self, tmp_path):
        config = ClientConfig(
            base_url="https://api.example.com/v1/",
            default_headers={"Accept": "application/json", "X-Client": "{{client}}"},
        )
        assembler = make_assembler(tmp_path, config, programmatic={"client": "restrun"})
        request = Request("GET", "/users", headers=[("accept", "text/plain")])
        prepared = assembler.assemble(request)
        assert prepared.url == "https://api.example.com/v1/users"
        assert prepared.headers == [("accept", "text/plain"), ("X-Client", "restrun")]

    def test_directives_and_config_defaults(self, tmp_path):
        config = ClientConfig(follow_redirects=False, timeout=12.0)
        assembler = make_assembler(tmp_path, config)
        prepared = assembler.assemble(Request("GET", "https://example.com", no_cookie_jar=True))
        assert prepared.no_redirect is True
        assert prepared.no_cookie_jar is True
        assert prepared.timeout == 12.0

    def test_request_timeout_in_milliseconds(self, tmp_path):
        prepared = make_assembler(tmp_path).assemble(
            Request("GET", "https://example.com", timeout_ms=250)
        )
        assert prepared.timeout == 0.25


class TestExternalBodies:
    """Tests for < and <@ body files."""

    def test_variable_body_is_substituted(self, tmp_path):
        (tmp_path / "body.json").write_text('{"user": "{{user}}"}', encoding="utf-8")
        assembler = make_assembler(tmp_path, programmatic={"user": "alice"})
        request = Request(
            "POST",
            "https://example.com",
            external_body_path="./body.json",
            external_body_with_variables=True,
        )
        assert assembler.assemble(request).body == b'{"user": "alice"}'

    def test_static_body_is_sent_verbatim(self, tmp_path):
        (tmp_path / "raw.bin").write_bytes(b"\x00{{user}}\xff")
        assembler = make_assembler(tmp_path, programmatic={"user": "alice"})
        request = Request("POST", "https://example.com", external_body_path="raw.bin")
        assert assembler.assemble(request).body == b"\x00{{user}}\xff"

    def test_path_itself_is_substituted(self, tmp_path):
        (tmp_path / "dev.json").write_text("dev body", encoding="utf-8")
        assembler = make_assembler(tmp_path, programmatic={"env": "dev"})
        request = Request("POST", "https://example.com", external_body_path="{{env}}.json")
        assert assembler.assemble(request).body == b"dev body"

    def test_latin1_body(self, tmp_path):
        (tmp_path / "body.txt").write_bytes("café".encode("latin-1"))
        assert load_external_body("body.txt", tmp_path, "latin1") == "café"

    def test_missing_file(self, tmp_path):
        assembler = make_assembler(tmp_path)
        request = Request("POST", "https://example.com", external_body_path="missing.json")
        with pytest.raises(ExternalBodyError, match="failed to read external body file"):
            assembler.assemble(request)

    def test_undecodable_file(self, tmp_path):
        (tmp_path / "body.txt").write_bytes(b"\xff\xfe\xfa")
        with pytest.raises(ExternalBodyError, match="failed to decode"):
            load_external_body("body.txt", tmp_path)

    def test_unsupported_encoding(self, tmp_path):
        with pytest.raises(ExternalBodyError, match="unsupported encoding"):
            load_external_body("body.txt", tmp_path, "ebcdic")

    def test_absolute_path(self, tmp_path):
        path = tmp_path / "abs.bin"
        path.write_bytes(b"abs")
        assert load_static_body(str(path), Path("/somewhere/else")) == b"abs"


class TestFormBodies:
    """Tests for application/x-www-form-urlencoded re-encoding."""

    FORM = [("Content-Type", "application/x-www-form-urlencoded")]

    def assemble_form(self, tmp_path, body, **chain_kwargs):
        request = Request("POST", "https://example.com/submit", headers=self.FORM, raw_body=body)
        return make_assembler(tmp_path, **chain_kwargs).assemble(request)

    def test_special_characters_are_encoded(self, tmp_path):
        """Values are taken literally and keys come out sorted."""
        prepared = self.assemble_form(
            tmp_path,
            "key1=value with spaces&key2=value+plus&key3=value/slash&key4=value=equals"
            "&key5=value&ampersand&key6=value%percent&key7=你好世界",
        )
        assert prepared.body == (
            b"ampersand=&key1=value+with+spaces&key2=value%2Bplus&key3=value%2Fslash"
            b"&key4=value%3Dequals&key5=value&key6=value%25percent"
            b"&key7=%E4%BD%A0%E5%A5%BD%E4%B8%96%E7%95%8C"
        )

    def test_variables_are_substituted_before_encoding(self, tmp_path):
        prepared = self.assemble_form(
            tmp_path,
            "param1={{my_value}}&param2=static value",
            programmatic={"my_value": "value with spaces & special chars like +/=%& and unicode 世界"},
        )
        assert prepared.body == (
            b"+and+unicode+%E4%B8%96%E7%95%8C=&+special+chars+like+%2B%2F=%25"
            b"&param1=value+with+spaces+&param2=static+value"
        )

    def test_extra_equals_stays_in_value(self, tmp_path):
        prepared = self.assemble_form(tmp_path, "key1=value1=invalid&key2=value2")
        assert prepared.body == b"key1=value1%3Dinvalid&key2=value2"

    def test_lines_are_joined_as_pairs(self, tmp_path):
        prepared = self.assemble_form(tmp_path, "b=2\na=1")
        assert prepared.body == b"a=1&b=2"

    def test_content_type_match_is_case_insensitive(self, tmp_path):
        request = Request(
            "POST",
            "https://example.com",
            headers=[("content-type", "Application/X-WWW-Form-Urlencoded; charset=utf-8")],
            raw_body="a=x y",
        )
        assert make_assembler(tmp_path).assemble(request).body == b"a=x+y"

    def test_empty_form_body_is_none(self, tmp_path):
        assert self.assemble_form(tmp_path, "&").body is None

    @pytest.mark.parametrize(
        "headers",
        [[("Content-Type", "application/json")], []],
    )
    def test_other_bodies_are_unchanged(self, tmp_path, headers):
        request = Request("POST", "https://example.com", headers=headers, raw_body="a=x y&b=+")
        assert make_assembler(tmp_path).assemble(request).body == b"a=x y&b=+"


MULTIPART_BODY = """--XYZ
Content-Disposition: form-data; name="title"

Report {{n}}
--XYZ
Content-Disposition: form-data; name="file"; filename="data.txt"
Content-Type: text/plain

< ./data.txt
--XYZ--"""


class TestMultipartBodies:
    """Tests for multipart/form-data bodies with file parts."""

    MULTIPART = [("Content-Type", "multipart/form-data; boundary=XYZ")]

    def test_file_part_is_replaced_with_file_content(self, tmp_path):
        (tmp_path / "data.txt").write_bytes(b"file contents\n")
        assembler = make_assembler(tmp_path, programmatic={"n": "7"})
        request = Request(
            "POST", "https://example.com/upload", headers=self.MULTIPART, raw_body=MULTIPART_BODY
        )
        body = assembler.assemble(request).body

        assert body.startswith(b"--XYZ\r\n")
        assert body.endswith(b"--XYZ--\r\n")
        assert b'Content-Disposition: form-data; name="title"\r\n\r\nReport 7\r\n' in body
        assert b'name="file"; filename="data.txt"' in body
        assert b"Content-Type: text/plain\r\n\r\nfile contents\n\r\n" in body
        assert b"< ./data.txt" not in body
        assert body.index(b'name="title"') < body.index(b'name="file"')

    def test_parts_without_name_are_skipped(self):
        parts = parse_multipart_body(
            '--B\nContent-Type: text/plain\n\nno name\n--B\nContent-Disposition: form-data; name="a"\n\n1\n--B--',
            "B",
        )
        assert parts == [MultipartPart(name="a", content="1")]

    def test_headers_without_blank_line(self):
        parts = parse_multipart_body(
            '--B\nContent-Disposition: form-data; name="doc"; filename="d.pdf"\n'
            "Content-Type: application/pdf\n< ./d.pdf\n--B--",
            "B",
        )
        assert parts == [
            MultipartPart(
                name="doc",
                filename="d.pdf",
                content_type="application/pdf",
                content="./d.pdf",
                file_reference=True,
            )
        ]

    def test_quoted_boundary(self, tmp_path):
        (tmp_path / "data.txt").write_bytes(b"x")
        body = build_multipart_body(
            MULTIPART_BODY.replace("{{n}}", "1"), 'multipart/form-data; boundary="XYZ"', tmp_path
        )
        assert body.startswith(b"--XYZ\r\n")

    def test_missing_file(self, tmp_path):
        assembler = make_assembler(tmp_path, programmatic={"n": "1"})
        request = Request(
            "POST", "https://example.com", headers=self.MULTIPART, raw_body=MULTIPART_BODY
        )
        with pytest.raises(ExternalBodyError, match="failed to read external body file"):
            assembler.assemble(request)

    def test_missing_boundary(self, tmp_path):
        request = Request(
            "POST",
            "https://example.com",
            headers=[("Content-Type", "multipart/form-data")],
            raw_body=MULTIPART_BODY,
        )
        with pytest.raises(MultipartBodyError, match="no boundary found"):
            make_assembler(tmp_path, programmatic={"n": "1"}).assemble(request)

    def test_no_named_sections(self, tmp_path):
        with pytest.raises(MultipartBodyError, match="no valid multipart sections"):
            build_multipart_body("--XYZ\n\n< ./data.txt\n--XYZ--", "multipart/form-data; boundary=XYZ", tmp_path)

    def test_body_without_file_parts_is_unchanged(self, tmp_path):
        body = '--XYZ\nContent-Disposition: form-data; name="a"\n\n1\n--XYZ--'
        request = Request("POST", "https://example.com", headers=self.MULTIPART, raw_body=body)
        assert make_assembler(tmp_path).assemble(request).body == body.encode("utf-8")


@pytest.mark.parametrize(
    "base,url,expected",
    [
        (None, "/users", "/users"),
        ("https://api.example.com", "/users", "https://api.example.com/users"),
        ("https://api.example.com/", "users", "https://api.example.com/users"),
        ("https://api.example.com", "https://other.example.com/x", "https://other.example.com/x"),
    ],
)
def test_join_base_url(base, url, expected):
    assert join_base_url(base, url) == expected
