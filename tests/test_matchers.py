from __future__ import annotations

from mock_expect import HttpRequest, HttpResponse, Headers
from mock_expect import matchers as m


def _request(
    method: str = "GET",
    target: str = "/foo",
    headers: list[tuple[str, str]] | None = None,
    body: bytes | str = b"",
) -> HttpRequest:
    return HttpRequest.build(method, target, headers, body)


def test_empty_all_of_matches_everything_and_empty_any_of_nothing() -> None:
    request = _request()

    assert m.all_of().matches(request)
    assert m.all_of().matches("anything at all")
    assert not m.any_of().matches(request)
    assert not m.any_of().matches(None)


def test_method_and_path_projection() -> None:
    request = _request("get", "/foo?key=value")

    assert request.method == "GET"
    assert m.method_path("GET", "/foo").matches(request)
    assert m.method_path("get", "/foo").matches(request)
    assert not m.method_path("POST", "/foo").matches(request)
    assert not m.path("/foo?key=value").matches(request)


def test_combinators_and_operators() -> None:
    request = _request("DELETE", "/items/7")

    assert (m.method("DELETE") & m.path(m.matches(r"^/items/\d+$"))).matches(request)
    assert (m.method("GET") | m.method("DELETE")).matches(request)
    assert (~m.method("GET")).matches(request)
    assert m.not_(m.any_of(m.path("/a"), m.path("/b"))).matches(request)


def test_header_matches_if_any_instance_satisfies() -> None:
    request = _request(headers=[("X-Tag", "alpha"), ("x-tag", "beta"), ("Accept", "*/*")])

    assert m.header("X-TAG", "beta").matches(request)
    assert m.header("x-tag", "alpha").matches(request)
    assert not m.header("x-tag", "gamma").matches(request)
    assert not m.header("x-missing", m.any_value()).matches(request)
    assert m.headers(m.contains(("accept", "*/*"))).matches(request)
    assert m.headers(m.contains(m.key("x-tag"))).matches(request)


def test_json_decoded_body() -> None:
    request = _request("POST", "/bar", body='{"foo": "bar"}')

    assert m.body(m.json_decoded({"foo": "bar"})).matches(request)
    assert not m.body(m.json_decoded({"foo": "baz"})).matches(request)
    assert m.body(m.json_decoded(m.contains(("foo", "bar")))).matches(request)


def test_decode_failures_evaluate_to_false() -> None:
    invalid_json = _request("POST", "/bar", body=b"{not json")
    invalid_utf8 = _request("POST", "/bar", body=b"\xff\xfe\xfa")

    assert not m.body(m.json_decoded(m.any_value())).matches(invalid_json)
    assert m.not_(m.body(m.json_decoded(m.any_value()))).matches(invalid_json)
    assert not m.body(m.json_decoded(m.any_value())).matches(invalid_utf8)
    assert not m.body("text").matches(invalid_utf8)
    assert not m.body(m.url_decoded(m.any_value())).matches(invalid_utf8)
    assert not m.body(m.matches("x")).matches(invalid_utf8)


def test_url_decoded_query_and_body() -> None:
    request = _request("POST", "/form?key=value&empty=", body="a=1&b=two+words")

    assert m.query(m.url_decoded(m.contains(("key", "value")))).matches(request)
    assert m.query(m.url_decoded(m.contains(("empty", "")))).matches(request)
    assert not m.query(m.url_decoded(m.contains(("key", "other")))).matches(request)
    assert m.body(m.url_decoded(m.contains(("b", "two words")))).matches(request)
    assert m.body(m.url_decoded(m.len_(2))).matches(request)


def test_value_predicates_on_bodies() -> None:
    request = _request("POST", "/upload", body=b"Hello World")

    assert m.body("Hello World").matches(request)
    assert m.body(b"Hello World").matches(request)
    assert m.body(m.contains("World")).matches(request)
    assert not m.body(m.contains("world")).matches(request)
    assert m.body(m.lowercase(m.contains("world"))).matches(request)
    assert m.body(m.matches(r"H\w+o")).matches(request)
    assert m.body(m.matches(rb"^Hello")).matches(request)
    assert m.body(m.len_(11)).matches(request)


def test_pair_matchers() -> None:
    assert m.key("a").matches(("a", 1))
    assert m.value(1).matches(("a", 1))
    assert m.coerce(("a", 1)).matches(("a", 1))
    assert not m.key("a").matches("a")
    assert m.contains(m.value(m.any_of(2, 3))).matches({"x": 1, "y": 3})


def test_projections_reject_wrong_value_types() -> None:
    assert not m.method("GET").matches("GET")
    assert not m.status_code(200).matches(_request())
    assert not m.len_(0).matches(42)
    assert not m.lowercase("x").matches(1)
    assert not m.contains("a").matches(5)


def test_response_matchers() -> None:
    response = HttpResponse(
        status=201,
        headers=Headers([("Content-Type", "application/json")]),
        body=b'{"id": 1}',
    )

    assert m.status_code(201).matches(response)
    assert m.response_headers(m.contains(("content-type", "application/json"))).matches(response)
    assert m.response_body(m.json_decoded({"id": 1})).matches(response)
    assert not m.response_body(m.json_decoded({"id": 2})).matches(response)


def test_describe_renders_the_tree() -> None:
    matcher = m.all_of(m.method("GET"), m.path("/foo"), m.not_(m.header("X-A", "b")))

    assert matcher.describe() == "AllOf(Method(Eq('GET')), Path(Eq('/foo')), Not(Header('x-a', Eq('b'))))"
    assert str(m.any_value()) == "Any"
    assert m.body(m.json_decoded({"a": 1})).describe() == "Body(JsonDecoded(Eq({'a': 1})))"
