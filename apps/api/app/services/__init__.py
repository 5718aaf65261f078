from app.services.backend_proxy import (
    build_backend_url,
    build_content_type_header,
    build_proxy_error,
    forward_to_backend,
)
from app.services.s3_storage import (
    build_object_key,
    build_object_url,
    create_s3_client,
    delete_object,
    ensure_key_under_prefix,
    ensure_s3_bucket,
    generate_presigned_post,
    parse_object_url,
)
from app.services.upload_completion import (
    BackendNotificationError,
    CompletionOutcome,
    build_backend_notification,
    build_notification_headers,
    decode_token_payload,
    notify_backend,
    process_completed_upload,
    resolve_backend_origin,
)
from app.services.upload_tokens import (
    ALLOWED_CONTENT_TYPES,
    build_token_options,
    issue_client_token,
    parse_client_payload,
)

__all__ = [
    "build_backend_url",
    "build_content_type_header",
    "build_proxy_error",
    "forward_to_backend",
    "create_s3_client",
    "ensure_s3_bucket",
    "ensure_key_under_prefix",
    "build_object_key",
    "build_object_url",
    "parse_object_url",
    "generate_presigned_post",
    "delete_object",
    "BackendNotificationError",
    "CompletionOutcome",
    "decode_token_payload",
    "resolve_backend_origin",
    "build_backend_notification",
    "build_notification_headers",
    "notify_backend",
    "process_completed_upload",
    "ALLOWED_CONTENT_TYPES",
    "parse_client_payload",
    "build_token_options",
    "issue_client_token",
]
