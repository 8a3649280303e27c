"""key = value configuration files with per-user overrides.

Config files are plain text::

    # comment
    jpeg_quality = 95
    fix_orientation = false

When the project config is not writable (installed read-only, shipped inside
a container image, ...) updates land in an override file under
``USER_CONFIG_OVERRIDES_DIR`` and are layered on top on the next read.
"""

from __future__ import annotations

import asyncio
import errno
import hashlib
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import aiofiles

from .logging_utils import get_module_logger
from .paths import PROJECT_ROOT, USER_CONFIG_OVERRIDES_DIR

logger = get_module_logger("ConfigManager")

_TRUE_VALUES = ("true", "1", "yes", "on")

T = TypeVar("T")


class ConfigManager:

    def __init__(self, overrides_dir: Optional[Path] = None) -> None:
        self.lock = asyncio.Lock()
        self._overrides_dir = Path(overrides_dir) if overrides_dir else USER_CONFIG_OVERRIDES_DIR
        self._project_root = PROJECT_ROOT.resolve()

    # ------------------------------------------------------------------
    # Parsing helpers

    @staticmethod
    def _stringify_value(value: Any) -> str:
        if isinstance(value, bool):
            return str(value).lower()
        if value is None:
            return ""
        return str(value)

    @staticmethod
    def parse_lines(lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}
        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.split("#", 1)[0].strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                value = value[1:-1]

            config[key] = value
        return config

    def _apply_updates(self, lines: List[str], updates: Dict[str, Any]) -> List[str]:
        updated_keys = set()
        for i, line in enumerate(lines):
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key = stripped.split("=", 1)[0].strip()
            if key in updates:
                indent = len(line) - len(line.lstrip())
                lines[i] = " " * indent + f"{key} = {self._stringify_value(updates[key])}\n"
                updated_keys.add(key)

        for key, value in updates.items():
            if key not in updated_keys:
                lines.append(f"{key} = {self._stringify_value(value)}\n")
                logger.debug("Added new config key: %s", key)
        return lines

    # ------------------------------------------------------------------
    # Overrides

    def override_path(self, config_path: Path) -> Path:
        try:
            rel_path = config_path.resolve().relative_to(self._project_root)
        except ValueError:
            digest = hashlib.sha1(str(config_path).encode("utf-8")).hexdigest()[:10]
            safe_name = re.sub(r"[^a-zA-Z0-9._-]+", "_", config_path.stem or "config")
            rel_path = Path("external") / f"{safe_name}_{digest}{config_path.suffix or '.txt'}"
        return self._overrides_dir / rel_path

    def _load_override(self, config_path: Path) -> Dict[str, str]:
        path = self.override_path(config_path)
        if not path.exists():
            return {}
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return self.parse_lines(fh)
        except OSError as exc:
            logger.warning("Failed to read override config %s: %s", path, exc)
            return {}

    def _write_override(self, config_path: Path, updates: Dict[str, Any]) -> bool:
        path = self.override_path(config_path)
        try:
            merged = self._load_override(config_path)
            merged.update({key: self._stringify_value(value) for key, value in updates.items()})
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                for key in sorted(merged):
                    fh.write(f"{key} = {merged[key]}\n")
            logger.debug("Stored config overrides in %s", path)
            return True
        except OSError as exc:
            logger.error("Failed to write config override %s: %s", path, exc)
            return False

    def _clear_override(self, config_path: Path) -> None:
        try:
            self.override_path(config_path).unlink(missing_ok=True)
        except OSError:
            return

    @staticmethod
    def _is_read_only_error(exc: OSError) -> bool:
        return isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EROFS)

    # ------------------------------------------------------------------
    # Reading

    def read_config(self, config_path: Path) -> Dict[str, str]:
        config: Dict[str, str] = {}
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as fh:
                    config = self.parse_lines(fh)
            except OSError as exc:
                logger.error("Failed to read config %s: %s", config_path, exc)

        config.update(self._load_override(config_path))
        return config

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        config: Dict[str, str] = {}
        if await asyncio.to_thread(config_path.exists):
            try:
                async with aiofiles.open(config_path, "r", encoding="utf-8") as fh:
                    config = self.parse_lines(await fh.readlines())
            except OSError as exc:
                logger.error("Failed to read config %s: %s", config_path, exc)

        config.update(await asyncio.to_thread(self._load_override, config_path))
        return config

    # ------------------------------------------------------------------
    # Writing

    def write_config(self, config_path: Path, updates: Dict[str, Any]) -> bool:
        if not config_path.exists():
            logger.error("Config file not found: %s", config_path)
            return False
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                lines = fh.readlines()
            with open(config_path, "w", encoding="utf-8") as fh:
                fh.writelines(self._apply_updates(lines, updates))
            self._clear_override(config_path)
            return True
        except OSError as exc:
            if self._is_read_only_error(exc):
                logger.warning("Config %s is not writable (%s), using override file", config_path, exc)
                return self._write_override(config_path, updates)
            logger.error("Failed to write config %s: %s", config_path, exc, exc_info=True)
            return False

    async def write_config_async(self, config_path: Path, updates: Dict[str, Any]) -> bool:
        if not await asyncio.to_thread(config_path.exists):
            logger.error("Config file not found: %s", config_path)
            return False

        async with self.lock:
            try:
                async with aiofiles.open(config_path, "r", encoding="utf-8") as fh:
                    lines = await fh.readlines()
                async with aiofiles.open(config_path, "w", encoding="utf-8") as fh:
                    await fh.writelines(self._apply_updates(lines, updates))
                await asyncio.to_thread(self._clear_override, config_path)
                return True
            except OSError as exc:
                if self._is_read_only_error(exc):
                    logger.warning("Config %s is not writable (%s), using override file", config_path, exc)
                    return await asyncio.to_thread(self._write_override, config_path, updates)
                logger.error("Failed to write config %s: %s", config_path, exc, exc_info=True)
                return False

    # ------------------------------------------------------------------
    # Typed getters
    #
    # Missing and blank values fall back to the default; unparsable ones do
    # too, with a warning naming the key.

    def _typed(self, config: Dict[str, str], key: str, default: T, parse: Callable[[str], T]) -> T:
        raw = config.get(key, "").strip()
        if not raw:
            return default
        try:
            return parse(raw)
        except ValueError:
            logger.warning("Invalid value for %s: %r, using default %r", key, raw, default)
            return default

    def get_bool(self, config: Dict[str, str], key: str, default: bool = False) -> bool:
        return self._typed(config, key, default, _parse_bool)

    def get_int(self, config: Dict[str, str], key: str, default: int = 0) -> int:
        return self._typed(config, key, default, int)

    def get_float(self, config: Dict[str, str], key: str, default: float = 0.0) -> float:
        return self._typed(config, key, default, float)

    def get_str(self, config: Dict[str, str], key: str, default: str = "") -> str:
        return self._typed(config, key, default, str)


def _parse_bool(raw: str) -> bool:
    return raw.lower() in _TRUE_VALUES


_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    return _config_manager


__all__ = ["ConfigManager", "get_config_manager"]
