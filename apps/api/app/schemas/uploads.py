from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

GENERATE_CLIENT_TOKEN = "blob.generate-client-token"
UPLOAD_COMPLETED = "blob.upload-completed"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ClientTokenRequestPayload(_WireModel):
    pathname: str = Field(min_length=1)
    client_payload: str | None = Field(default=None, alias="clientPayload")
    content_type: str | None = Field(default=None, alias="contentType")


class GenerateClientTokenEvent(_WireModel):
    type: Literal["blob.generate-client-token"]
    payload: ClientTokenRequestPayload


class UploadedBlob(_WireModel):
    url: str = Field(min_length=1)
    pathname: str = Field(min_length=1)
    content_type: str | None = Field(default=None, alias="contentType")


class UploadCompletedPayload(_WireModel):
    blob: UploadedBlob
    token_payload: str | None = Field(default=None, alias="tokenPayload")


class UploadCompletedEvent(_WireModel):
    type: Literal["blob.upload-completed"]
    payload: UploadCompletedPayload


HandleUploadBody = Annotated[
    GenerateClientTokenEvent | UploadCompletedEvent,
    Field(discriminator="type"),
]
handle_upload_body_adapter: TypeAdapter[GenerateClientTokenEvent | UploadCompletedEvent] = TypeAdapter(
    HandleUploadBody
)


class TokenOptions(_WireModel):
    allowed_content_types: list[str] = Field(alias="allowedContentTypes")
    add_random_suffix: bool = Field(alias="addRandomSuffix")
    token_payload: str = Field(alias="tokenPayload")


class ClientTokenGrant(TokenOptions):
    upload_url: str = Field(alias="uploadUrl")
    upload_method: str = Field(default="POST", alias="uploadMethod")
    form_fields: dict[str, str] = Field(alias="fields")
    pathname: str
    url: str
    maximum_size_in_bytes: int | None = Field(default=None, alias="maximumSizeInBytes")
    valid_until: int = Field(alias="validUntil")
    callback_url: str | None = Field(default=None, alias="callbackUrl")


class GenerateClientTokenResponse(_WireModel):
    type: Literal["blob.generate-client-token"] = GENERATE_CLIENT_TOKEN
    client_token: ClientTokenGrant = Field(alias="clientToken")


class UploadCompletedResponse(_WireModel):
    type: Literal["blob.upload-completed"] = UPLOAD_COMPLETED
    response: Literal["ok"] = "ok"


class BackendNotification(BaseModel):
    url: str
    filename: str


class UploadErrorResponse(BaseModel):
    error: str
