"""The built-in sm.ms provider, expressed as a fixed API descriptor."""

from up2b.managers.api import ApiManager
from up2b.schemas.descriptor import ApiConfig
from up2b.transport import HttpTransport

# Only the token of this provider is user editable; the descriptor is
# re-seeded from here whenever the configuration is loaded or saved.
SMMS_API = ApiConfig.model_validate(
    {
        "base_url": "https://smms.app/api/v2/",
        "auth_method": {"type": "HEADER", "key": "Authorization"},
        "list": {
            "path": "upload_history",
            "method": {"type": "GET"},
            "controller": {
                "items_key": "data",
                "image_url_key": "url",
                "deleted_id_key": "hash",
            },
        },
        "delete": {
            "path": "delete/",
            "method": {"type": "GET", "kind": {"type": "PATH"}},
            "controller": {
                "type": "JSON",
                "key": "success",
                "should_be": {"type": "BOOL", "value": True},
                "message_key": "message",
            },
        },
        "upload": {
            "path": "upload",
            "max_size": 5 * 1024 * 1024,
            "timeout": 5,
            "allowed_formats": ["JPEG", "PNG", "GIF", "BMP", "WEBP"],
            "compressed_format": "WEBP",
            "content_type": {
                "type": "MULTIPART",
                "file_kind": "STREAM",
                "file_part_name": "smfile",
            },
            "controller": {
                "image_url_key": "data.url",
                "deleted_id_key": "data.hash",
                "status": {"key": "success", "should_be": {"type": "BOOL", "value": True}},
                "error": {
                    "key": "message",
                    "repeated_regex": r"exists at: (https?://\S+)",
                },
            },
        },
    }
)


class SmmsManager(ApiManager):
    def __init__(self, token: str, transport: HttpTransport):
        super().__init__("SMMS", SMMS_API.model_copy(deep=True), token, transport)
