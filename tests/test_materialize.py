"""Tests for turning a Request plus variables into a ConcreteRequest."""

import base64

import pytest

from climan.core import materialize, serialize_param
from climan.errors import BodyFileError, UnresolvedVariableError
from climan.model import Request


def _request(**fields):
    data = {"name": "req", "method": "GET", "uri": "http://localhost/items"}
    data.update(fields)
    return Request.model_validate(data)


# ── URI and headers ──────────────────────────────────────────────────────


class TestUriAndHeaders:
    def test_uri_resolved(self):
        req = _request(uri="{{BASE}}/users/{{id}}")
        concrete = materialize(req, {"BASE": "http://api", "id": "3"})
        assert concrete.url == "http://api/users/3"
        assert concrete.method == "GET"

    def test_header_values_resolved_keys_untouched(self):
        req = _request(headers={"X-{{name}}": "{{value}}"})
        concrete = materialize(req, {"value": "v1", "name": "ignored"})
        assert concrete.headers == {"X-{{name}}": "v1"}

    def test_lowercase_method_accepted(self):
        req = _request(method="post")
        assert materialize(req, {}).method == "POST"

    def test_unresolved_uri_raises(self):
        with pytest.raises(UnresolvedVariableError):
            materialize(_request(uri="{{nope}}/x"), {})

    def test_variables_not_mutated(self):
        variables = {"BASE": "http://api"}
        materialize(_request(uri="{{BASE}}"), variables)
        assert variables == {"BASE": "http://api"}


# ── Query parameters ─────────────────────────────────────────────────────


class TestQueryParams:
    def test_list_becomes_repeated_params(self):
        req = _request(queryParams={"tags": ["a", "b"]})
        assert materialize(req, {}).params == [("tags", "a"), ("tags", "b")]

    def test_scalar_types(self):
        req = _request(queryParams={"s": "text", "n": 3, "f": 1.5, "yes": True, "no": False})
        assert materialize(req, {}).params == [
            ("s", "text"),
            ("n", "3"),
            ("f", "1.5"),
            ("yes", "true"),
            ("no", "false"),
        ]

    def test_mixed_list_each_element_by_type(self):
        req = _request(queryParams={"v": ["x", 2, True]})
        assert materialize(req, {}).params == [("v", "x"), ("v", "2"), ("v", "true")]

    def test_strings_resolved_names_not(self):
        req = _request(queryParams={"{{k}}": "{{v}}", "ids": ["{{a}}", "{{b}}"]})
        params = materialize(req, {"v": "1", "a": "x", "b": "y", "k": "ignored"}).params
        assert params == [("{{k}}", "1"), ("ids", "x"), ("ids", "y")]

    def test_nested_lists_flattened(self):
        assert serialize_param("n", [1, [2, [3]]], {}) == [("n", "1"), ("n", "2"), ("n", "3")]

    def test_no_query_params(self):
        assert materialize(_request(), {}).params == []


# ── Body ─────────────────────────────────────────────────────────────────


class TestBody:
    def test_content_resolved(self):
        req = _request(method="POST", body={"content": '{"user": "{{user}}"}'})
        assert materialize(req, {"user": "bob"}).body == b'{"user": "bob"}'

    def test_trim_true_strips_after_resolution(self):
        req = _request(body={"content": "  {{value}}\n", "trim": True})
        assert materialize(req, {"value": " padded "}).body == b"padded"

    def test_trim_false_preserves_whitespace(self):
        req = _request(body={"content": "  {{value}}\n", "trim": False})
        assert materialize(req, {"value": "v"}).body == b"  v\n"

    def test_trim_absent_preserves_whitespace(self):
        req = _request(body={"content": "\n body \n"})
        assert materialize(req, {}).body == b"\n body \n"

    def test_file_relative_to_base_dir(self, tmp_path):
        (tmp_path / "payload.bin").write_bytes(b"\x00raw {{not_resolved}}")
        req = _request(body={"file": "{{name}}.bin"})
        concrete = materialize(req, {"name": "payload"}, base_dir=tmp_path)
        assert concrete.body == b"\x00raw {{not_resolved}}"

    def test_file_absolute_path(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{}")
        req = _request(body={"file": str(path)})
        assert materialize(req, {}, base_dir=tmp_path / "elsewhere").body == b"{}"

    def test_missing_file_raises(self, tmp_path):
        req = _request(body={"file": "missing.json"})
        with pytest.raises(BodyFileError) as exc:
            materialize(req, {}, base_dir=tmp_path)
        assert "missing.json" in str(exc.value)

    def test_no_body(self):
        assert materialize(_request(), {}).body is None


# ── Authentication ───────────────────────────────────────────────────────


class TestAuthentication:
    def test_basic(self):
        req = _request(authentication={"type": "basic", "username": "alice", "password": "secret"})
        expected = "Basic " + base64.b64encode(b"alice:secret").decode()
        assert materialize(req, {}).headers["Authorization"] == expected

    def test_basic_without_password(self):
        req = _request(authentication={"type": "basic", "username": "alice"})
        expected = "Basic " + base64.b64encode(b"alice:").decode()
        assert materialize(req, {}).headers["Authorization"] == expected

    def test_basic_fields_resolved(self):
        req = _request(
            authentication={"type": "basic", "username": "{{u}}", "password": "{{p}}"},
        )
        expected = "Basic " + base64.b64encode(b"alice:secret").decode()
        assert materialize(req, {"u": "alice", "p": "secret"}).headers["Authorization"] == expected

    def test_bearer(self):
        req = _request(authentication={"type": "bearer", "token": "abc123"})
        assert materialize(req, {}).headers["Authorization"] == "Bearer abc123"

    def test_bearer_token_resolved(self):
        req = _request(authentication={"type": "bearer", "token": "{{token}}"})
        assert materialize(req, {"token": "xyz"}).headers["Authorization"] == "Bearer xyz"

    def test_overrides_user_authorization_header(self):
        req = _request(
            headers={"authorization": "Token old", "Accept": "application/json"},
            authentication={"type": "bearer", "token": "new"},
        )
        headers = materialize(req, {}).headers
        assert headers == {"Accept": "application/json", "Authorization": "Bearer new"}

    def test_unresolved_token_raises(self):
        req = _request(authentication={"type": "bearer", "token": "{{token}}"})
        with pytest.raises(UnresolvedVariableError):
            materialize(req, {})
