"""Style cache/loader.

Style documents live at
``{profiles_base_path}/{profile_id}/{layer_dir}/styles/{file_name}`` and
are memoized per ``profile_id:layer_id:style_id``. A cached record is
never replaced until the cache is cleared; debug mode bypasses the cache
in both directions.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable

import httpx
from loguru import logger

from mapcore.config import Settings, settings as default_settings
from mapcore.layers.errors import ConfigError, LayerError, StyleValidationError
from mapcore.layers.fetch import fetch_json
from mapcore.layers.layer import LayerDescriptor, StyleMetadata, StyleRecord
from mapcore.layers.style_validator import format_validation_errors, validate_style


def extract_label_config(style_data: Any) -> dict | None:
    """Integrated label config, only for a ``label`` object with ``enabled is True``."""
    if not isinstance(style_data, dict):
        return None
    label = style_data.get("label")
    if isinstance(label, dict) and label.get("enabled") is True:
        return {**label, "isIntegrated": True}
    return None


def _apply_label_defaults(style_data: dict, style_path: str) -> None:
    label = style_data.get("label")
    if isinstance(label, dict) and label.get("enabled") is True and "visibleByDefault" not in label:
        label["visibleByDefault"] = False
        logger.warning(
            f"Style {style_path} enables labels without 'visibleByDefault'; "
            f"defaulting to visibleByDefault=false"
        )


class StyleLoader:
    """Fetches, validates and caches style documents.

    Args:
        client: httpx client used for every fetch. The loader never closes it.
        settings: ``debug``, ``profiles_base_path`` and the validation flags.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None) -> None:
        self._client = client
        self._settings = settings or default_settings
        self._cache: dict[str, StyleRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        if self._settings.debug:
            logger.info("Style loader in debug mode, cache disabled")

    @property
    def cache_enabled(self) -> bool:
        return not self._settings.debug

    def style_path(self, profile_id: str, layer_dir: str, file_name: str) -> str:
        base = self._settings.profiles_base_path.strip().rstrip("/") or "profiles"
        return f"{base}/{profile_id}/{layer_dir}/styles/{file_name}"

    async def load_and_validate_style(
        self,
        profile_id: str,
        layer_id: str,
        style_id: str,
        file_name: str,
        layer_dir: str,
        lenient: bool = False,
    ) -> StyleRecord:
        """Load one style document, from cache when possible.

        Raises:
            FetchError: the document could not be fetched.
            ParseError: the document is not valid JSON.
            StyleValidationError: schema violations, unless ``lenient`` is
                set or ``style_throw_on_validation_error`` is off.
        """
        cache_key = f"{profile_id}:{layer_id}:{style_id}"
        if not self.cache_enabled:
            return await self._load(cache_key, profile_id, layer_id, style_id, file_name, layer_dir, lenient)

        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Style served from cache: {cache_key}")
            return cached

        # Concurrent loads of one key share a single fetch
        lock = self._locks.setdefault(cache_key, asyncio.Lock())
        async with lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached
            record = await self._load(cache_key, profile_id, layer_id, style_id, file_name, layer_dir, lenient)
            self._cache[cache_key] = record
            return record

    async def _load(
        self,
        cache_key: str,
        profile_id: str,
        layer_id: str,
        style_id: str,
        file_name: str,
        layer_dir: str,
        lenient: bool,
    ) -> StyleRecord:
        path = self.style_path(profile_id, layer_dir, file_name)
        logger.debug(f"Loading style {cache_key} from {path}")
        try:
            style_data = await fetch_json(self._client, path, layer_id)
        except LayerError as e:
            logger.error(f"Style {cache_key} could not be loaded from {path}: {e}")
            raise

        if not isinstance(style_data, dict):
            raise StyleValidationError(f"Style document {path} is not a JSON object", layer_id=layer_id)

        _apply_label_defaults(style_data, path)

        if self._settings.style_validate_on_load:
            result = validate_style(
                style_data,
                {"profile_id": profile_id, "layer_id": layer_id, "style_id": style_id, "style_path": path},
            )
            if not result.valid:
                logger.error(format_validation_errors(result, path))
                if self._settings.style_throw_on_validation_error and not lenient:
                    raise StyleValidationError(
                        f"Style {path} does not match the style schema",
                        layer_id=layer_id,
                        issues=result.errors,
                    )
            for warning in result.warnings:
                logger.warning(f"Style {path}: {warning.field}: {warning.message}")

        label_config = extract_label_config(style_data)
        record = StyleRecord(
            style_data=style_data,
            label_config=label_config,
            metadata=StyleMetadata(
                profile_id=profile_id,
                layer_id=layer_id,
                style_id=style_id,
                style_path=path,
                has_integrated_labels=label_config is not None,
                loaded_at=datetime.now(timezone.utc).isoformat(),
            ),
        )
        logger.info(f"Style loaded: {style_id}{' (integrated labels)' if label_config else ''}")
        return record

    async def load_style_lenient(
        self, profile_id: str, layer_id: str, style_id: str, file_name: str, layer_dir: str
    ) -> StyleRecord:
        """Best-effort load that keeps a style even when it fails validation."""
        return await self.load_and_validate_style(
            profile_id, layer_id, style_id, file_name, layer_dir, lenient=True
        )

    async def preload_styles(self, configs: Iterable[dict]) -> list[StyleRecord | dict]:
        """Load several styles concurrently.

        Each config has ``profile_id``, ``layer_id``, ``style_id``,
        ``file_name`` and ``layer_dir``. A failed load is reported in
        place as ``{"error": True, "message": ..., "config": ...}``.
        """
        configs = list(configs)
        logger.info(f"Preloading {len(configs)} style(s)")

        async def _one(config: dict) -> StyleRecord | dict:
            try:
                return await self.load_and_validate_style(
                    config["profile_id"],
                    config["layer_id"],
                    config["style_id"],
                    config["file_name"],
                    config["layer_dir"],
                )
            except (LayerError, KeyError) as e:
                return {"error": True, "message": str(e), "config": config}

        results = await asyncio.gather(*(_one(c) for c in configs))
        failed = sum(1 for r in results if isinstance(r, dict))
        logger.info(f"Style preload done: {len(results) - failed} loaded, {failed} failed")
        return list(results)

    async def load_style_from_layer_config(
        self,
        profile_id: str,
        descriptor: LayerDescriptor,
        style_id_or_file: str,
        lenient: bool = False,
    ) -> StyleRecord:
        """Resolve a style by id or file name through ``styles.available``.

        Raises:
            ConfigError: the descriptor still references a separate label
                style file (``labels.styleFile``), which is no longer supported.
        """
        layer_id = descriptor.id or ""
        if descriptor.labels and descriptor.labels.get("styleFile"):
            raise ConfigError(
                f"Layer {layer_id} uses obsolete 'labels.styleFile' "
                f"({descriptor.labels['styleFile']}); labels belong in the style document",
                layer_id=layer_id,
            )

        style_id = file_name = style_id_or_file
        available = (descriptor.styles or {}).get("available")
        if isinstance(available, list):
            for entry in available:
                if isinstance(entry, dict) and style_id_or_file in (entry.get("id"), entry.get("file")):
                    style_id = entry.get("id") or style_id
                    file_name = entry.get("file") or file_name
                    break
        if not file_name.endswith(".json"):
            file_name = f"{file_name}.json"
        if style_id.endswith(".json"):
            style_id = style_id[: -len(".json")]

        layer_dir = descriptor.layer_directory or f"layers/{layer_id}"
        return await self.load_and_validate_style(profile_id, layer_id, style_id, file_name, layer_dir, lenient)

    async def load_default_style(self, profile_id: str, descriptor: LayerDescriptor) -> StyleRecord | None:
        if not descriptor.default_style:
            return None
        return await self.load_style_from_layer_config(profile_id, descriptor, descriptor.default_style)

    def get_cached(self, cache_key: str) -> StyleRecord | None:
        return self._cache.get(cache_key)

    def clear_cache(self, cache_key: str | None = None) -> None:
        if cache_key:
            self._cache.pop(cache_key, None)
            self._locks.pop(cache_key, None)
            logger.info(f"Style cache cleared for {cache_key}")
        else:
            count = len(self._cache)
            self._cache.clear()
            self._locks.clear()
            logger.info(f"Style cache cleared ({count} entries)")

    def cache_stats(self) -> dict[str, Any]:
        return {
            "size": len(self._cache),
            "keys": list(self._cache),
            "debug": self._settings.debug,
            "cache_enabled": self.cache_enabled,
        }
