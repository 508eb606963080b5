"""Stored settings: API configurations and app-wide preferences.

API configs live as a list under ``apiConfigs``. Exactly one of them is the
default once any exist: the first config added becomes default, marking
another as default clears the flag elsewhere, and deleting the default
promotes the first remaining one.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from companion_chat.models import APIConfig, AppSettings, new_id
from companion_chat.storage import STORAGE_KEYS, KeyValueStore
from companion_chat.validation import ValidationFailed, require_valid_api_config

logger = logging.getLogger(__name__)

_API_CONFIGS = STORAGE_KEYS["api_configs"]
_APP_SETTINGS = STORAGE_KEYS["app_settings"]

# assigned on creation, never taken from user input
_READ_ONLY = ("id", "created_at")


# ── API configurations ───────────────────────────────────


def list_api_configs(store: KeyValueStore) -> list[APIConfig]:
    return store.get_models(_API_CONFIGS, APIConfig)


def get_api_config(store: KeyValueStore, config_id: str) -> APIConfig | None:
    for config in list_api_configs(store):
        if config.id == config_id:
            return config
    return None


def _build_config(data: dict[str, Any]) -> APIConfig:
    require_valid_api_config(data)
    try:
        return APIConfig.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed([err["msg"] for err in e.errors()]) from e


def _make_sole_default(configs: list[APIConfig], config_id: str) -> None:
    for config in configs:
        config.is_default = config.id == config_id


def add_api_config(store: KeyValueStore, fields: dict[str, Any]) -> APIConfig:
    """Validate and store a new config. Raises ValidationFailed."""
    data = {k: v for k, v in fields.items() if k not in _READ_ONLY}
    config = _build_config({**data, "id": new_id("api")})

    configs = list_api_configs(store)
    configs.append(config)
    if len(configs) == 1 or config.is_default:
        _make_sole_default(configs, config.id)
    store.set_models(_API_CONFIGS, configs)
    logger.debug("Added API config %s (%s)", config.id, config.name)
    return config


def update_api_config(store: KeyValueStore, config_id: str,
                      fields: dict[str, Any]) -> APIConfig | None:
    """Merge fields into a stored config. Returns None if it does not exist."""
    configs = list_api_configs(store)
    for i, existing in enumerate(configs):
        if existing.id == config_id:
            break
    else:
        return None

    data = {k: v for k, v in fields.items() if k not in _READ_ONLY}
    updated = _build_config({**existing.model_dump(), **data})
    configs[i] = updated
    if data.get("is_default"):
        _make_sole_default(configs, config_id)
    store.set_models(_API_CONFIGS, configs)
    return updated


def delete_api_config(store: KeyValueStore, config_id: str) -> bool:
    configs = list_api_configs(store)
    remaining = [c for c in configs if c.id != config_id]
    if len(remaining) == len(configs):
        return False
    if remaining and not any(c.is_default for c in remaining):
        remaining[0].is_default = True
    store.set_models(_API_CONFIGS, remaining)

    settings = get_app_settings(store)
    if settings.default_api_config_id == config_id:
        update_app_settings(store, {"default_api_config_id": None})
    return True


def default_api_config(store: KeyValueStore) -> APIConfig | None:
    """The config chat requests use when none is named.

    ``appSettings.default_api_config_id`` wins, then the config flagged as
    default, then the first stored one.
    """
    configs = list_api_configs(store)
    if not configs:
        return None
    preferred = get_app_settings(store).default_api_config_id
    for config in configs:
        if config.id == preferred:
            return config
    return next((c for c in configs if c.is_default), configs[0])


# ── App settings ─────────────────────────────────────────


def get_app_settings(store: KeyValueStore) -> AppSettings:
    raw = store.get(_APP_SETTINGS)
    if not raw:
        return AppSettings()
    try:
        return AppSettings.model_validate(raw)
    except ValidationError as e:
        logger.warning("Stored app settings are invalid, using defaults: %s", e)
        return AppSettings()


def update_app_settings(store: KeyValueStore, fields: dict[str, Any]) -> AppSettings:
    """Merge fields into the stored settings and persist.

    Raises pydantic's ValidationError for unknown values.
    """
    settings = AppSettings.model_validate({**get_app_settings(store).model_dump(), **fields})
    store.set(_APP_SETTINGS, settings.model_dump(mode="json"))
    return settings
