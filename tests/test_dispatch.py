"""
Tests for dispatch.py: routing, the extractor chain, error envelopes and
response contract enforcement.
"""

import logging

import pytest
from pydantic import BaseModel, Field, field_validator

from api_contracts import (
    Body,
    DocumentAssembler,
    Json,
    MethodNotAllowed,
    NotFound,
    OperationGroup,
    Path,
    PlainText,
    Query,
)
from api_contracts.dispatch import Route, default_specificity

from helpers import call, header, json_body
from sample_api import build_service

AVATAR_BODY = (
    "--XyZ\r\n"
    'Content-Disposition: form-data; name="caption"\r\n'
    "\r\n"
    "hello\r\n"
    "--XyZ\r\n"
    'Content-Disposition: form-data; name="file"; filename="a.png"\r\n'
    "Content-Type: image/png\r\n"
    "\r\n"
    "PNG\r\n"
    "--XyZ--\r\n"
).encode()


class Signup(BaseModel):
    email: str
    nickname: str = Field(default="anon", min_length=2)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        if "@" not in value:
            raise ValueError("not an email address")
        return value.lower()


def build_signup_service(seen):
    group = OperationGroup()

    @group.post("/signups", responses=PlainText())
    def signup(body=Body(Json(Signup))):
        seen.append(body)
        return body.email

    return DocumentAssembler("Signups", "1").include(group).build()


class TestRoute:
    """Tests for Route.compile() / match()"""

    def test_literal_and_placeholder(self):
        route = Route.compile("/users/{user_id}")
        assert route.literal_count == 1
        assert route.match(["users", "42"]) == {"user_id": "42"}
        assert route.match(["users"]) is None
        assert route.match(["teams", "42"]) is None

    def test_percent_decoding(self):
        route = Route.compile("/files/{name}")
        assert route.match(["files", "a%20b.txt"]) == {"name": "a b.txt"}

    def test_mixed_segment(self):
        route = Route.compile("/reports/{name}.{ext}")
        assert route.match(["reports", "q1.csv"]) == {"name": "q1", "ext": "csv"}
        assert route.match(["reports", "q1"]) is None

    def test_default_specificity(self):
        assert default_specificity(Route.compile("/users/me")) > default_specificity(Route.compile("/users/{id}"))
        assert default_specificity(Route.compile("/a/{x}/c")) > default_specificity(Route.compile("/a/{x}/{y}"))


class TestMatching:
    """Tests for DispatchTable.match()"""

    def test_literal_beats_placeholder(self, service):
        response = call(service, "GET", "/users/me")
        assert response.status == 200
        assert json_body(response)["name"] == "alice"

    def test_placeholder_route(self, service):
        response = call(service, "GET", "/users/2")
        assert response.status == 200
        assert json_body(response)["name"] == "bob"
        assert header(response, "X-Rate-Limit") == "99"

    def test_delete_route(self, service):
        response = call(service, "DELETE", "/users/7")
        assert response.status == 204
        assert response.body == b""

    def test_method_falls_through_to_less_specific_route(self, service):
        # /users/me has no DELETE, so delete_user receives "me" as user_id
        response = call(service, "DELETE", "/users/me")
        assert response.status == 400
        assert json_body(response)["error"]["field"] == "user_id"

    def test_not_found(self, service):
        response = call(service, "GET", "/teams")
        assert response.status == 404
        assert json_body(response)["error"]["code"] == "NOT_FOUND"
        with pytest.raises(NotFound):
            service.dispatch.match("GET", "/teams")

    def test_method_not_allowed(self, service):
        response = call(service, "PUT", "/users/7")
        assert response.status == 405
        assert header(response, "Allow") == "DELETE, GET"
        assert json_body(response)["error"]["details"] == {"allowed": ["DELETE", "GET"]}

    def test_allow_collects_all_matching_routes(self, service):
        with pytest.raises(MethodNotAllowed) as exc:
            service.dispatch.match("PATCH", "/users/me")
        assert exc.value.allowed == ["DELETE", "GET"]

    def test_custom_specificity(self):
        # Prefer placeholders: /users/me is now read as /users/{user_id}
        service = build_service(specificity=lambda route: -route.literal_count)
        response = call(service, "GET", "/users/me")
        assert response.status == 400
        assert json_body(response)["error"]["field"] == "user_id"

    def test_routes_ordered_most_specific_first(self, service):
        routes = service.dispatch.routes
        assert routes.index("/users/me") < routes.index("/users/{user_id}")


class TestExtraction:
    """Tests for the extractor chain"""

    def test_query_and_header(self, service):
        response = call(service, "GET", "/users", "ids=2,5&limit=5", {"X-Trace-Id": "t-1"})
        assert response.status == 200
        assert [u["id"] for u in json_body(response)] == [2]

    def test_default_applies(self, service):
        response = call(service, "GET", "/users")
        assert [u["id"] for u in json_body(response)] == [1, 2]

    def test_malformed_parameter(self, service):
        response = call(service, "GET", "/users/abc")
        body = json_body(response)
        assert response.status == 400
        assert body["error"]["code"] == "INVALID_PARAMS"
        assert body["error"]["field"] == "user_id"
        assert body["error"]["details"]["kind"] == "malformed"

    def test_parameter_validation(self, service):
        response = call(service, "GET", "/users", "limit=0")
        body = json_body(response)
        assert response.status == 422
        assert body["error"]["code"] == "VALIDATION_FAILED"
        assert body["error"]["details"]["violations"][0]["rule"] == "minimum"

    def test_body_validation_lists_every_violation(self, service):
        response = call(service, "POST", "/users", headers={"Content-Type": "application/json"},
                        body=b'{"name": "B1"}')
        body = json_body(response)
        assert response.status == 422
        assert body["error"]["field"] == "body"
        assert sorted(v["rule"] for v in body["error"]["details"]["violations"]) == ["min_length", "pattern"]

    def test_unsupported_media_type(self, service):
        response = call(service, "POST", "/users", headers={"Content-Type": "text/plain"}, body=b"carol")
        assert response.status == 415
        assert json_body(response)["error"]["code"] == "UNSUPPORTED_MEDIA_TYPE"

    def test_payload_too_large(self):
        service = build_service(max_body_bytes=8)
        response = call(service, "POST", "/users", headers={"Content-Type": "application/json"},
                        body=b'{"name": "carol"}')
        assert response.status == 413
        assert json_body(response)["error"]["code"] == "PAYLOAD_TOO_LARGE"

    def test_created(self, service):
        response = call(service, "POST", "/users", headers={"Content-Type": "application/json"},
                        body=b'{"name": "carol", "role": "admin"}')
        assert response.status == 201
        assert json_body(response) == {"id": 3, "name": "carol", "role": "admin", "address": None, "tags": []}

    def test_conflict_variant(self, service):
        response = call(service, "POST", "/users", headers={"Content-Type": "application/json"},
                        body=b'{"name": "alice"}')
        assert response.status == 409
        assert json_body(response) == {"name": "taken"}

    def test_discriminated_body(self, service):
        response = call(service, "POST", "/owners", headers={"Content-Type": "application/json"},
                        body=b'{"name": "ann", "pet": {"pet_type": "dog"}}')
        assert response.status == 200
        assert json_body(response) == {"name": "ann", "pet": {"pet_type": "dog", "good": True}}

    def test_form_body(self, service):
        response = call(service, "POST", "/owners/search",
                        headers={"Content-Type": "application/x-www-form-urlencoded"},
                        body=b"terms=tabby&terms=beagle")
        assert json_body(response) == ["tabby", "beagle"]

    def test_multipart_body(self, service):
        response = call(service, "POST", "/users/1/avatar",
                        headers={"Content-Type": "multipart/form-data; boundary=XyZ"}, body=AVATAR_BODY)
        assert response.status == 200
        assert response.content_type == "text/plain"
        assert response.body == b"hello:a.png:3"

    def test_recursive_response(self, service):
        response = call(service, "GET", "/owners/tree")
        assert json_body(response) == {"value": 1, "children": [{"value": 2, "children": []}]}

    def test_handler_not_called_after_failure(self):
        calls = []
        group = OperationGroup()

        @group.get("/items/{item_id}", responses=PlainText())
        def get_item(item_id=Path("item_id", int), q=Query("q")):
            calls.append(item_id)
            return "ok"

        service = DocumentAssembler("Items", "1").include(group).build()
        assert call(service, "GET", "/items/x", "q=a").status == 400
        assert call(service, "GET", "/items/1").status == 400
        assert calls == []
        assert call(service, "GET", "/items/1", "q=a").status == 200
        assert calls == [1]


class TestModelValidators:
    """Tests for pydantic validators on request bodies"""

    def _post(self, service, body):
        return call(service, "POST", "/signups", headers={"Content-Type": "application/json"}, body=body)

    def test_validator_normalizes_value(self):
        seen = []
        response = self._post(build_signup_service(seen), b'{"email": "Ann@Example.COM"}')
        assert response.status == 200
        assert response.body == b"ann@example.com"
        assert seen[0].email == "ann@example.com"
        assert seen[0].nickname == "anon"

    def test_validator_rejects_value(self):
        seen = []
        response = self._post(build_signup_service(seen), b'{"email": "NOT-AN-EMAIL"}')
        body = json_body(response)
        assert response.status == 422
        assert body["error"]["code"] == "VALIDATION_FAILED"
        assert body["error"]["details"]["violations"] == [{
            "path": "email",
            "rule": "value_error",
            "message": "Value error, not an email address",
        }]
        assert seen == []

    def test_constraints_reported_before_validators(self):
        seen = []
        response = self._post(build_signup_service(seen), b'{"email": "bad", "nickname": "x"}')
        violations = json_body(response)["error"]["details"]["violations"]
        assert response.status == 422
        assert [(v["path"], v["rule"]) for v in violations] == [("nickname", "min_length")]
        assert seen == []


class TestErrors:
    """Tests for handler failures and response contract modes"""

    def test_handler_exception_is_500(self, service, caplog):
        with caplog.at_level(logging.ERROR, logger="api.contracts.dispatch"):
            response = call(service, "GET", "/users/broken", headers={"X-Request-ID": "req-1"})
        body = json_body(response)
        assert response.status == 500
        assert body == {"error": {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "requestId": "req-1",
        }}
        assert "database is down" not in response.body.decode()
        assert any("broken" in record.getMessage() for record in caplog.records)

    def test_warn_mode_sends_invalid_response(self, service, caplog):
        with caplog.at_level(logging.WARNING, logger="api.contracts.dispatch"):
            response = call(service, "GET", "/users/invalid")
        assert response.status == 200
        assert json_body(response) == {"id": 7, "name": "X"}
        violations = [r for r in caplog.records if getattr(r, "event", None) == "contract_violation"]
        assert len(violations) == 1
        assert violations[0].operation == "invalid"

    def test_strict_mode_rejects_invalid_response(self, strict_service):
        response = call(strict_service, "GET", "/users/invalid")
        body = json_body(response)
        assert response.status == 500
        assert body["error"]["code"] == "RESPONSE_SCHEMA_MISMATCH"
        assert sorted(v["rule"] for v in body["error"]["details"]["violations"]) == ["min_length", "pattern"]

    def test_strict_mode_passes_valid_response(self, strict_service):
        assert call(strict_service, "GET", "/users/1").status == 200


class TestRequestId:
    """Tests for request id propagation"""

    def test_echoes_incoming_id(self, service):
        response = call(service, "GET", "/users/1", headers={"X-Request-ID": "abc-123"})
        assert header(response, "X-Request-ID") == "abc-123"

    def test_generates_id(self, service):
        response = call(service, "GET", "/teams")
        request_id = header(response, "X-Request-ID")
        assert request_id
        assert json_body(response)["error"]["requestId"] == request_id

    def test_custom_header(self):
        service = build_service(request_id_header="X-Correlation-ID")
        response = call(service, "GET", "/users/1", headers={"X-Correlation-ID": "c-9"})
        assert header(response, "X-Correlation-ID") == "c-9"
