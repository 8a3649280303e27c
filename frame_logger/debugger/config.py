"""Typed configuration for the frame debugger."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from frame_logger.core.config_manager import ConfigManager, get_config_manager
from frame_logger.core.logging_config import configure_logging
from frame_logger.core.paths import CONFIG_PATH, DEFAULT_BLOB_ROOT
from frame_logger.core.retry_policy import RetryPolicy

from .records import IMAGES_COLLECTION, SESSIONS_COLLECTION

if TYPE_CHECKING:
    from frame_logger.stores.base import DocumentFeed
    from frame_logger.stores.local import LocalBlobStore
    from frame_logger.viewer.api.server import ViewerServer


@dataclass(slots=True)
class DebuggerConfig:
    sessions_collection: str = SESSIONS_COLLECTION
    images_collection: str = IMAGES_COLLECTION
    jpeg_quality: int = 95
    fix_orientation: bool = False
    upload_attempts: int = 1
    retry_base_delay: float = 0.5
    operation_timeout: float = 0.0
    log_level: str = "info"
    log_file: str = ""
    blob_root: Path = field(default_factory=lambda: DEFAULT_BLOB_ROOT)
    viewer_host: str = "127.0.0.1"
    viewer_port: int = 8080

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, str],
        manager: Optional[ConfigManager] = None,
    ) -> "DebuggerConfig":
        cm = manager or get_config_manager()
        values = dict(config)
        defaults = cls()
        return cls(
            sessions_collection=cm.get_str(values, "sessions_collection", defaults.sessions_collection),
            images_collection=cm.get_str(values, "images_collection", defaults.images_collection),
            jpeg_quality=min(100, max(1, cm.get_int(values, "jpeg_quality", defaults.jpeg_quality))),
            fix_orientation=cm.get_bool(values, "fix_orientation", defaults.fix_orientation),
            upload_attempts=max(1, cm.get_int(values, "upload_attempts", defaults.upload_attempts)),
            retry_base_delay=max(0.0, cm.get_float(values, "retry_base_delay", defaults.retry_base_delay)),
            operation_timeout=max(0.0, cm.get_float(values, "operation_timeout", defaults.operation_timeout)),
            log_level=cm.get_str(values, "log_level", defaults.log_level),
            log_file=cm.get_str(values, "log_file", defaults.log_file),
            blob_root=Path(cm.get_str(values, "blob_root", str(defaults.blob_root))).expanduser(),
            viewer_host=cm.get_str(values, "viewer_host", defaults.viewer_host),
            viewer_port=cm.get_int(values, "viewer_port", defaults.viewer_port),
        )

    @classmethod
    def load(cls, path: Path = CONFIG_PATH, manager: Optional[ConfigManager] = None) -> "DebuggerConfig":
        cm = manager or get_config_manager()
        return cls.from_config(cm.read_config(path), cm)

    @classmethod
    async def load_async(cls, path: Path = CONFIG_PATH, manager: Optional[ConfigManager] = None) -> "DebuggerConfig":
        cm = manager or get_config_manager()
        return cls.from_config(await cm.read_config_async(path), cm)

    def save(self, path: Path = CONFIG_PATH, manager: Optional[ConfigManager] = None) -> bool:
        """Write these settings back to ``path``, keeping its comments and layout.

        A read-only config file is left alone and the values go to the
        per-user override file instead. Returns False if nothing was stored.
        """
        cm = manager or get_config_manager()
        return cm.write_config(path, self.to_dict())

    async def save_async(self, path: Path = CONFIG_PATH, manager: Optional[ConfigManager] = None) -> bool:
        cm = manager or get_config_manager()
        return await cm.write_config_async(path, self.to_dict())

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.upload_attempts, base_delay=self.retry_base_delay)

    @property
    def timeout(self) -> Optional[float]:
        return self.operation_timeout or None

    # ------------------------------------------------------------------
    # Wiring helpers for hosts

    def apply_logging(self, *, force: bool = False, console: bool = True) -> None:
        configure_logging(self.log_level, force=force, console=console, log_file=self.log_file or None)

    def blob_store(self) -> "LocalBlobStore":
        from frame_logger.stores.local import LocalBlobStore

        return LocalBlobStore(self.blob_root)

    def viewer_server(self, feed: "DocumentFeed") -> "ViewerServer":
        from frame_logger.viewer.api.server import ViewerServer

        return ViewerServer(
            feed,
            self.viewer_host,
            self.viewer_port,
            sessions_collection=self.sessions_collection,
            images_collection=self.images_collection,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["blob_root"] = str(self.blob_root)
        return data


__all__ = ["DebuggerConfig"]
