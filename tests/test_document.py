"""
Tests for document.py: assembling groups into one document.
"""

import json

import pytest
import yaml
from pydantic import BaseModel

from api_contracts import (
    ConflictingPathTemplate,
    DocumentAssembler,
    DuplicateOperationId,
    DuplicatePathMethod,
    Json,
    NameConflict,
    OperationGroup,
    Path,
    PlainText,
    RegistryFrozen,
)
from api_contracts.schema import SchemaKind, SchemaObject

from sample_api import Address, build_assembler


class TestDocument:
    """Tests for the sample service document"""

    def test_header(self, service):
        spec = service.document.to_dict()
        assert spec["openapi"] == "3.0.0"
        assert spec["info"] == {
            "title": "Sample API",
            "description": "Users and pets",
            "contact": {"name": "API Team", "email": "api@example.com"},
            "license": {"name": "MIT"},
            "version": "1.2.0",
        }
        assert spec["servers"] == [{"url": "https://api.example.com", "description": "Production"}]

    def test_paths(self, service):
        paths = service.document.to_dict()["paths"]
        assert set(paths["/users/{user_id}"]) == {"get", "delete"}
        assert set(paths["/users"]) == {"get", "post"}
        assert "/owners/search" in paths

    def test_operation_entry(self, service):
        get_user = service.document.to_dict()["paths"]["/users/{user_id}"]["get"]
        assert get_user["operationId"] == "get_user"
        assert get_user["tags"] == ["users"]
        assert get_user["summary"] == "Fetch one user."
        assert get_user["parameters"] == [{
            "name": "user_id",
            "in": "path",
            "required": True,
            "style": "simple",
            "explode": False,
            "schema": {"type": "integer", "format": "int64"},
        }]
        assert set(get_user["responses"]) == {"200", "404"}

    def test_list_parameters(self, service):
        list_users = service.document.operation("list_users").to_dict()
        ids, limit, trace = list_users["parameters"]
        assert ids["explode"] is False
        assert ids["required"] is False
        assert ids["schema"] == {"type": "array", "items": {"type": "integer", "format": "int64"}}
        assert limit["schema"]["default"] == 10
        assert limit["schema"]["maximum"] == 100
        assert trace["in"] == "header"

    def test_components(self, service):
        components = service.document.to_dict()["components"]
        assert set(components["schemas"]) == {
            "Address", "AvatarUpload", "Cat", "Dog", "NewUser", "Node", "Owner", "Role", "SearchForm", "User",
        }
        assert list(components["schemas"]) == sorted(components["schemas"])
        assert components["securitySchemes"]["apiKey"] == {"type": "apiKey", "name": "X-API-Key", "in": "header"}
        assert components["securitySchemes"]["oauth"]["type"] == "oauth2"

    def test_security(self, service):
        paths = service.document.to_dict()["paths"]
        assert paths["/users/{user_id}"]["delete"]["security"] == [{"oauth": ["write"]}]
        assert paths["/owners"]["post"]["security"] == [{"apiKey": []}]
        assert "security" not in paths["/users/{user_id}"]["get"]

    def test_tags_declared_then_first_use(self, service):
        tags = service.document.to_dict()["tags"]
        assert tags == [{"name": "users", "description": "User management"}, {"name": "pets"}]

    def test_webhooks(self, service):
        spec = service.document.to_dict()
        hook = spec["webhooks"]["ownerCreated"]["post"]
        assert hook["operationId"] == "owner_created"
        assert hook["responses"] == {"204": {"description": "No Content"}}
        assert "ownerCreated" not in spec["paths"]

    def test_registry_is_frozen(self, service):
        registry = service.document.registry
        assert registry.frozen
        with pytest.raises(RegistryFrozen):
            registry.insert("Late", SchemaObject(kind=SchemaKind.ANY))

    def test_json_and_yaml_agree(self, service):
        assert json.loads(service.spec_json) == service.spec
        assert yaml.safe_load(service.spec_yaml) == service.spec
        assert yaml.safe_load(service.document.to_yaml()) == json.loads(service.document.to_json())

    def test_summary(self, service):
        assert service.summary() == {"paths": 9, "operations": 11, "webhooks": 1, "schemas": 10}

    def test_builds_are_independent(self):
        first = build_assembler().build()
        second = build_assembler().build()
        assert first.spec == second.spec
        assert first.document.registry is not second.document.registry


class TestAssembler:
    """Tests for DocumentAssembler.build() errors"""

    def test_duplicate_path_method(self):
        first = OperationGroup()
        second = OperationGroup()

        @first.get("/items/{item_id}", responses=PlainText())
        def get_item(item_id=Path("item_id")):
            pass

        @second.get("/items/{id}", responses=PlainText())
        def get_item_again(id=Path("id")):
            pass

        with pytest.raises(DuplicatePathMethod) as exc:
            DocumentAssembler("Dup", "1").include(first).include(second).build()
        assert exc.value.method == "get"

    def test_placeholder_names_must_agree_across_methods(self):
        group = OperationGroup()

        @group.get("/items/{id}", responses=PlainText())
        def get_item(id=Path("id")):
            pass

        @group.delete("/items/{item_id}")
        def delete_item(item_id=Path("item_id")):
            pass

        with pytest.raises(ConflictingPathTemplate) as exc:
            DocumentAssembler("Items", "1").include(group).build()
        assert exc.value.path == "/items/{item_id}"
        assert exc.value.existing == "/items/{id}"

    def test_shared_placeholder_names_give_one_path(self):
        group = OperationGroup()

        @group.get("/items/{id}", responses=PlainText())
        def get_item(id=Path("id")):
            pass

        @group.delete("/items/{id}")
        def delete_item(id=Path("id")):
            pass

        service = DocumentAssembler("Items", "1").include(group).build()
        assert list(service.spec["paths"]) == ["/items/{id}"]
        assert service.dispatch.routes == ["/items/{id}"]

    def test_same_path_other_method_is_fine(self):
        group = OperationGroup("/items")

        @group.get("")
        def list_items():
            pass

        @group.post("")
        def create_item():
            pass

        service = DocumentAssembler("Ok", "1").include(group).build()
        assert set(service.document.paths["/items"]) == {"get", "post"}

    def test_duplicate_operation_id(self):
        first = OperationGroup("/a")
        second = OperationGroup("/b")

        @first.get("")
        def fetch():
            pass

        @second.get("", operation_id="fetch")
        def other():
            pass

        with pytest.raises(DuplicateOperationId):
            DocumentAssembler("Dup", "1").include(first).include(second).build()

    def test_name_conflict_aborts_build(self):
        class OtherAddress(BaseModel):
            __schema_name__ = "Address"
            line: str

        group = OperationGroup()

        @group.get("/a", responses=Json(OtherAddress))
        def a():
            pass

        assembler = DocumentAssembler("Conflict", "1").schema(Address).include(group)
        with pytest.raises(NameConflict):
            assembler.build()

    def test_schema_publishes_unused_type(self):
        service = DocumentAssembler("Extra", "1").schema(Address).build()
        assert "Address" in service.spec["components"]["schemas"]
        assert service.spec["paths"] == {}

    def test_external_docs_and_terms(self):
        service = (
            DocumentAssembler("Docs", "1", terms_of_service="https://example.com/terms")
            .external_docs("https://docs.example.com", "Guide")
            .build()
        )
        assert service.spec["info"]["termsOfService"] == "https://example.com/terms"
        assert service.spec["externalDocs"] == {"url": "https://docs.example.com", "description": "Guide"}
