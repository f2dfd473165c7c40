"""Schemas for the persisted user configuration and provider codes."""

import re
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .descriptor import AuthConfig

CUSTOM_PREFIX = "CUSTOM-"
CUSTOM_CODE_PATTERN = re.compile(r"^\w+$")


class ManagerKind(str, Enum):
    API = "API"
    GIT = "GIT"
    CHEVERETO = "CHEVERETO"


# code -> (display name, home page, kind)
BUILTIN_MANAGERS: dict[str, tuple[str, str, ManagerKind]] = {
    "SMMS": ("sm.ms", "https://sm.ms", ManagerKind.API),
    "IMGSE": ("imgse.com", "https://imgse.com", ManagerKind.CHEVERETO),
    "IMGTG": ("img.tg", "https://img.tg", ManagerKind.CHEVERETO),
    "GITHUB": ("github.com", "https://github.com", ManagerKind.GIT),
}

DEFAULT_MANAGER = "SMMS"


def normalize_custom_code(code: str) -> str:
    """Return the canonical ``CUSTOM-<NAME>`` form of a custom code."""
    name = code.strip()
    if name.upper().startswith(CUSTOM_PREFIX):
        name = name[len(CUSTOM_PREFIX):]
    return CUSTOM_PREFIX + name.upper()


def is_custom_code(code: str) -> bool:
    return code.upper().startswith(CUSTOM_PREFIX)


def parse_manager_code(code: str) -> str:
    """Validate a provider code and return its canonical spelling.

    Raises:
        ValueError: If the code is neither built-in nor a custom code.
    """
    stripped = code.strip()
    if stripped.upper() in BUILTIN_MANAGERS:
        return stripped.upper()
    if is_custom_code(stripped) and len(stripped) > len(CUSTOM_PREFIX):
        return normalize_custom_code(stripped)
    raise ValueError(
        f"unknown provider code {code!r}, expected one of "
        f"{', '.join(BUILTIN_MANAGERS)} or {CUSTOM_PREFIX}<NAME>"
    )


class ManagerItem(BaseModel):
    """Entry of the provider catalog shown to the user."""

    key: str
    name: str
    index: Optional[str] = None
    type: ManagerKind

    @classmethod
    def from_code(cls, code: str) -> "ManagerItem":
        code = parse_manager_code(code)
        if code in BUILTIN_MANAGERS:
            name, index, kind = BUILTIN_MANAGERS[code]
            return cls(key=code, name=name, index=index, type=kind)
        return cls(key=code, name=code[len(CUSTOM_PREFIX):], type=ManagerKind.API)


class ProxyConfig(BaseModel):
    type: Literal["http", "https", "socks5", "socks5h"] = "http"
    host: str
    port: int = Field(..., gt=0, lt=65536)

    @property
    def url(self) -> str:
        return f"{self.type}://{self.host}:{self.port}"


class AppConfig(BaseModel):
    """The whole configuration document."""

    using: str = DEFAULT_MANAGER
    automatic_compression: bool = False
    use_proxy: bool = False
    proxy: Optional[ProxyConfig] = None
    auth_config: dict[str, AuthConfig] = Field(default_factory=dict)

    @field_validator("using")
    @classmethod
    def canonical_using(cls, v: str) -> str:
        return parse_manager_code(v)

    @field_validator("auth_config", mode="before")
    @classmethod
    def canonical_keys(cls, v):
        if isinstance(v, dict):
            return {parse_manager_code(k): item for k, item in v.items()}
        return v

    @property
    def proxy_url(self) -> Optional[str]:
        if self.use_proxy and self.proxy is not None:
            return self.proxy.url
        return None

    def get_auth_config(self, code: str) -> Optional[AuthConfig]:
        return self.auth_config.get(parse_manager_code(code))

    def insert_auth_config(self, code: str, config: AuthConfig) -> None:
        self.auth_config[parse_manager_code(code)] = config
