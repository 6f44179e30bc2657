# === FILE: spider_stream/config.py ===
"""
Loading and validation of the crawler configuration.
Pydantic describes the schema; YAML and JSON files are both accepted.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TIMEOUT = 10


class CrawlerConfig(BaseModel):
    """Configuration of one crawl session."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    # scope
    scope: List[str] = Field(default_factory=list, description="Allow-list regexes, a URL must match one.")
    whitelist_domain: Optional[str] = Field(None, description="Only crawl http(s)://<this domain>.")
    disallowed: List[str] = Field(default_factory=list, description="Deny-list regexes.")
    default_disallowed: bool = Field(True, description="Block images, fonts, media and css.")
    max_depth: int = Field(1, ge=0, description="Max recursion depth, 0 for unlimited.")

    # rate limit
    concurrent: int = Field(5, ge=1, description="Max parallel requests.")
    delay: float = Field(0.0, ge=0, description="Fixed delay between requests (seconds).")
    random_delay: float = Field(0.0, ge=0, description="Extra random delay bound (seconds).")

    # HTTP client
    proxy: Optional[str] = Field(None, description="Proxy URL.")
    timeout: int = Field(DEFAULT_TIMEOUT, ge=0, description="Request timeout, 0 falls back to the default.")
    no_redirect: bool = Field(False, description="Refuse redirects that leave the current host.")
    verify_ssl: bool = Field(False, description="Verify TLS certificates.")
    headers: List[str] = Field(default_factory=list, description='Extra headers, "Name: value".')
    cookie: Optional[str] = Field(None, description="Raw Cookie header value.")
    burp_file: Optional[Path] = Field(None, description="Raw HTTP request to import headers and cookies from.")
    user_agent: str = Field("web", min_length=1, description='"web", "mobi" or a literal User-Agent.')

    # supplementary seeds
    sitemap: bool = Field(False, description="Probe well-known sitemap locations.")
    robots: bool = Field(False, description="Seed from robots.txt Allow/Disallow paths.")
    other_sources: bool = Field(False, description="Seed from historical URL archives.")
    include_subs: bool = Field(False, description="Include subdomains when querying archives.")

    # output
    derive: bool = Field(True, description="Look for subdomains and S3 buckets in page bodies.")
    filter_length: List[int] = Field(default_factory=list, description="Drop pages whose body has one of these lengths.")
    buffer_size: int = Field(256, ge=1, description="Capacity of the output and error streams.")

    @field_validator("filter_length", mode="before")
    def _split_lengths(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [int(p) for p in v.split(",") if p.strip().isdigit()]
        return v

    @field_validator("headers", "scope", "disallowed", mode="before")
    def _single_to_list(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v

    @property
    def effective_timeout(self) -> int:
        return self.timeout or DEFAULT_TIMEOUT


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of YAML must be a mapping, got {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Top level of JSON must be a mapping, got {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None], **overrides: Any) -> CrawlerConfig:
    """
    Read YAML or JSON and return a validated CrawlerConfig.
    Without a path the defaults are used; *overrides* win over file values.
    """
    data: dict[str, Any] = {}
    if path is not None:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

        suffix = path_obj.suffix.lower()
        if suffix in (".yaml", ".yml"):
            data = _read_yaml(path_obj)
        elif suffix == ".json":
            data = _read_json(path_obj)
        else:
            raise ValueError(f"Unsupported config format: {suffix}")

    data.update({k: v for k, v in overrides.items() if v is not None})
    return CrawlerConfig(**data)


__all__ = ["CrawlerConfig", "load_config", "DEFAULT_TIMEOUT"]
