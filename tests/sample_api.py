"""
Sample service shared by the test suite (and used as a CLI target).

Users and pets, covering every extractor kind, enumerated responses,
a self-referential model, a discriminated union and a webhook.
"""

from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

import annotated_types as at
from pydantic import BaseModel, Field

from api_contracts import (
    ApiKey,
    ApiResponse,
    Body,
    Constraints,
    DocumentAssembler,
    Form,
    Header,
    HeaderSpec,
    Json,
    Multipart,
    OAuth2,
    OAuthFlow,
    OperationGroup,
    Path,
    PlainText,
    Query,
    ResponseVariant,
    UploadedFile,
)


class Role(str, Enum):
    """Account role."""
    ADMIN = "admin"
    MEMBER = "member"


class Address(BaseModel):
    street: str
    zip: str = Field(pattern=r"^\d{5}$")


class User(BaseModel):
    """A registered user."""
    id: int
    name: str = Field(min_length=3, pattern=r"^[a-z]+$")
    role: Role = Role.MEMBER
    address: Optional[Address] = None
    tags: Annotated[List[str], Constraints(max_items=3, unique_items=True)] = []


class NewUser(BaseModel):
    name: str = Field(min_length=3, pattern=r"^[a-z]+$")
    role: Role = Role.MEMBER
    address: Optional[Address] = None


class Node(BaseModel):
    """Tree node."""
    value: int
    children: List["Node"] = []


class Cat(BaseModel):
    pet_type: Literal["cat"]
    lives: int = 9


class Dog(BaseModel):
    pet_type: Literal["dog"]
    good: bool = True


class Owner(BaseModel):
    name: str
    pet: Union[Cat, Dog] = Field(discriminator="pet_type")


class SearchForm(BaseModel):
    terms: List[str]
    exact: bool = False


class AvatarUpload(BaseModel):
    caption: str
    file: UploadedFile


class GetUserResponse(ApiResponse):
    ok = ResponseVariant(200, Json(User), "The user", headers=[HeaderSpec("X-Rate-Limit", int, "Requests left")])
    not_found = ResponseVariant(404, description="No such user")


class CreateUserResponse(ApiResponse):
    created = ResponseVariant(201, Json(User), "Created")
    conflict = ResponseVariant(409, Json(Dict[str, str]))


USERS = {
    1: User(id=1, name="alice", role=Role.ADMIN),
    2: User(id=2, name="bob"),
}


def build_users_group() -> OperationGroup:
    users = OperationGroup("/users", tags=["users"])

    @users.get("/me", responses=Json(User))
    def get_me():
        """Current user."""
        return USERS[1]

    @users.get("/{user_id}", responses=GetUserResponse)
    def get_user(user_id=Path("user_id", int)):
        """Fetch one user.

        Answers 404 when the user does not exist.
        """
        user = USERS.get(user_id)
        if user is None:
            return GetUserResponse.not_found()
        return GetUserResponse.ok(user, headers={"X-Rate-Limit": 99})

    @users.get("", responses=Json(List[User]))
    def list_users(
        ids=Query("ids", List[int], explode=False, required=False),
        limit=Query("limit", Annotated[int, at.Ge(1), at.Le(100)], default=10),
        trace=Header("X-Trace-Id", required=False),
    ):
        found = [u for u in USERS.values() if not ids or u.id in ids]
        return found[:limit]

    @users.post("", responses=CreateUserResponse)
    def create_user(body=Body(Json(NewUser))):
        if body.name in {u.name for u in USERS.values()}:
            return CreateUserResponse.conflict({"name": "taken"})
        return CreateUserResponse.created(User(id=3, name=body.name, role=body.role, address=body.address))

    @users.delete("/{user_id}", security=[{"oauth": ["write"]}])
    def delete_user(user_id=Path("user_id", int)):
        return None

    @users.post("/{user_id}/avatar", responses=PlainText())
    def upload_avatar(user_id=Path("user_id", int), form=Multipart(AvatarUpload)):
        return f"{form.caption}:{form.file.filename}:{len(form.file.data)}"

    @users.get("/broken", responses=Json(User))
    def broken():
        raise RuntimeError("database is down")

    @users.get("/invalid", responses=Json(User))
    def invalid():
        return {"id": 7, "name": "X"}

    return users


def build_pets_group() -> OperationGroup:
    pets = OperationGroup("/owners", tags=["pets"], security=["apiKey"])

    @pets.post("", responses=Json(Owner))
    def create_owner(body=Body(Json(Owner))):
        return body

    @pets.post("/search", responses=Json(List[str]))
    def search_owners(form=Form(SearchForm)):
        return form.terms

    @pets.get("/tree", responses=Json(Node))
    def family_tree():
        return Node(value=1, children=[Node(value=2)])

    @pets.webhook("ownerCreated", responses=None)
    def owner_created(body=Body(Json(Owner))):
        """Sent after an owner is created."""

    return pets


def build_assembler() -> DocumentAssembler:
    return (
        DocumentAssembler("Sample API", "1.2.0", description="Users and pets")
        .contact(name="API Team", email="api@example.com")
        .license("MIT")
        .server("https://api.example.com", "Production")
        .security_scheme("oauth", OAuth2(authorization_code=OAuthFlow(
            scopes={"read": "Read access", "write": "Write access"},
            authorization_url="https://auth.example.com/authorize",
            token_url="https://auth.example.com/token",
        )))
        .security_scheme("apiKey", ApiKey("X-API-Key"))
        .tag("users", "User management")
        .include(build_users_group())
        .include(build_pets_group())
    )


def build_service(**build_options):
    return build_assembler().build(**build_options)
