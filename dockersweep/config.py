"""
Run configuration.

Resolves the cleanup settings once from the environment and exposes the
execution mode and retention policy that every stage receives.
"""

import os
import tempfile
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional


DEFAULT_APP_NAME = "my-app"
DEFAULT_KEEP_IMAGES = 3

TRUE_VALUES = ("true", "1", "yes", "on")


class ExecutionMode(Enum):
    """Whether stages may mutate engine state."""
    DRY = "dry"
    LIVE = "live"


@dataclass(frozen=True)
class RetentionPolicy:
    """
    How many images of one repository to keep.
    
    Attributes:
        target_repository: Repository the retention stage is scoped to;
            empty disables the stage
        keep_count: Number of most recent images to keep (at least 1)
    """
    target_repository: str = ""
    keep_count: int = DEFAULT_KEEP_IMAGES

    def __post_init__(self):
        if self.keep_count < 1:
            raise ValueError(f"keep count must be at least 1, got {self.keep_count}")

    @property
    def enabled(self) -> bool:
        return bool(self.target_repository)


def parse_bool(value: Optional[str]) -> bool:
    """Interpret an environment flag such as DRY_RUN."""
    if value is None:
        return False
    return value.strip().lower() in TRUE_VALUES


def parse_keep_count(value) -> int:
    """
    Parse a keep count from an environment or CLI value.
    
    Raises:
        ValueError: If the value is not an integer >= 1
    """
    try:
        count = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"KEEP_IMAGES must be an integer, got {value!r}")
    if count < 1:
        raise ValueError(f"KEEP_IMAGES must be at least 1, got {count}")
    return count


@dataclass(frozen=True)
class CleanupConfig:
    """
    Settings for one cleanup run.
    
    Attributes:
        app_name: Label used in log messages
        keep_images: Retention count for project images
        target_repository: Repository/image name retention is scoped to
        dry_run: Inspect and log only, never mutate
        log_dir: Directory the run's log file is created in
    """
    app_name: str = DEFAULT_APP_NAME
    keep_images: int = DEFAULT_KEEP_IMAGES
    target_repository: str = ""
    dry_run: bool = False
    log_dir: str = field(default_factory=tempfile.gettempdir)

    def __post_init__(self):
        parse_keep_count(self.keep_images)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CleanupConfig":
        """
        Build a configuration from environment variables.
        
        Args:
            environ: Mapping to read from (defaults to os.environ)
            
        Returns:
            CleanupConfig: Resolved configuration
            
        Raises:
            ValueError: If KEEP_IMAGES is not a positive integer
        """
        if environ is None:
            environ = os.environ

        target = environ.get("TARGET_IMAGE_REPOSITORY") or environ.get("CI_REGISTRY_IMAGE", "")

        return cls(
            app_name=environ.get("APP_NAME") or DEFAULT_APP_NAME,
            keep_images=parse_keep_count(environ.get("KEEP_IMAGES") or DEFAULT_KEEP_IMAGES),
            target_repository=target.strip(),
            dry_run=parse_bool(environ.get("DRY_RUN")),
            log_dir=environ.get("CLEANUP_LOG_DIR") or tempfile.gettempdir(),
        )

    def override(self, **changes) -> "CleanupConfig":
        """Return a copy with the non-None values in changes applied."""
        changes = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **changes)

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.DRY if self.dry_run else ExecutionMode.LIVE

    @property
    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            target_repository=self.target_repository,
            keep_count=self.keep_images,
        )
