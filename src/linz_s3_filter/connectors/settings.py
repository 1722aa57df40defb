"""Settings resource for managing configuration from environment variables."""

import os
import types
from pathlib import Path
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel

from linz_s3_filter.config.constants import (
    DEFAULT_AWS_REGION,
    DEFAULT_CACHE_DIR,
    DEFAULT_CONCURRENCY_MULTIPLIER,
    DEFAULT_FETCH_RETRY_ATTEMPTS,
    DEFAULT_FETCH_RETRY_DELAY,
    DEFAULT_SKIP_SIGNATURE,
)

_TRUE_VALUES = ("true", "1", "yes", "y", "on")


def _unwrap_optional(annotation: Any) -> Any:
    """Return the non-None member of an optional annotation.

    :param annotation: Field annotation
    :returns: Inner type, or the annotation itself when not optional
    """
    if get_origin(annotation) in (Union, types.UnionType):
        inner = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(inner) == 1:
            return inner[0]
    return annotation


class SettingsResource(BaseModel):
    """Access options and tuning knobs threaded through the crawler and downloader.

    Replaces a process-wide configuration singleton: one instance is built at
    session creation and passed to every component that needs it.
    """

    aws_region: str = DEFAULT_AWS_REGION
    aws_skip_signature: bool = DEFAULT_SKIP_SIGNATURE
    concurrency_multiplier: int | None = None
    cache_dir: str | None = None
    fetch_retry_attempts: int = DEFAULT_FETCH_RETRY_ATTEMPTS
    fetch_retry_delay: float = DEFAULT_FETCH_RETRY_DELAY

    @staticmethod
    def create(swallow_errors: bool = False, **overrides: Any) -> "SettingsResource":
        """Create SettingsResource from environment variables.

        Explicit overrides (typically CLI flags) win over the environment; ``None``
        overrides are ignored so unset flags fall through to env or defaults.

        :param swallow_errors: If True, ignore validation errors
        :param overrides: Field values taking precedence over the environment
        :returns: SettingsResource instance
        """
        env_values: dict[str, Any] = {}
        for attr_name, field_info in SettingsResource.model_fields.items():
            raw = os.environ.get(attr_name.upper())
            if raw is None or raw.strip() == "":
                continue
            attr_type = _unwrap_optional(field_info.annotation)
            if attr_type is bool:
                env_values[attr_name] = raw.strip().lower() in _TRUE_VALUES
            elif attr_type is int:
                env_values[attr_name] = int(raw)
            elif attr_type is float:
                env_values[attr_name] = float(raw)
            else:
                env_values[attr_name] = raw

        env_values.update({key: value for key, value in overrides.items() if value is not None})
        settings = SettingsResource(**env_values)
        try:
            settings._post_init()
        except (TypeError, ValueError):
            if not swallow_errors:
                raise
        return settings

    def get_concurrency_multiplier(self) -> int:
        """Get concurrency multiplier, defaulting when unset.

        :returns: Multiplier applied to the available parallelism
        """
        if self.concurrency_multiplier is None:
            return DEFAULT_CONCURRENCY_MULTIPLIER
        return int(self.concurrency_multiplier)

    def get_cache_dir(self) -> Path:
        """Get the download root, falling back to the working directory.

        :returns: Cache directory path
        """
        return Path(self.cache_dir or DEFAULT_CACHE_DIR)

    def storage_options(self) -> dict[str, str]:
        """Access options understood by the catalog store.

        :returns: Mapping with ``skip_signature`` and ``region`` entries
        """
        return {
            "skip_signature": "true" if self.aws_skip_signature else "false",
            "region": self.aws_region,
        }

    def validate_settings(self) -> None:
        """Validate numeric settings are within range."""
        problems = []
        if self.concurrency_multiplier is not None and self.concurrency_multiplier < 1:
            problems.append(f"concurrency_multiplier must be >= 1, got {self.concurrency_multiplier}")
        if self.fetch_retry_attempts < 1:
            problems.append(f"fetch_retry_attempts must be >= 1, got {self.fetch_retry_attempts}")
        if self.fetch_retry_delay < 0:
            problems.append(f"fetch_retry_delay must be >= 0, got {self.fetch_retry_delay}")
        if not self.aws_region:
            problems.append("aws_region must not be empty")
        if problems:
            raise ValueError(f"Invalid settings: {'; '.join(problems)}")

    def _post_init(self) -> None:
        self.validate_settings()
