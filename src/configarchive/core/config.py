"""Configuration helpers for ConfigArchive."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from configarchive.core.models import DeviceSpec, FilterSpec

PROJECT_ROOT = Path(__file__).resolve().parents[3]


@dataclass(slots=True)
class ArchiveSettings:
    """Paths and switches used by a backup run."""

    scripts_dir: Path
    devices: Path
    state_dir: Path
    push: bool = True
    summary_dir: Path | None = None


DEFAULT_SETTINGS = ArchiveSettings(
    scripts_dir=PROJECT_ROOT / "expect_scripts",
    devices=PROJECT_ROOT / "config" / "devices.yml",
    state_dir=PROJECT_ROOT / "configs",
)


class ConfigLoadError(ValueError):
    """Raised when the device list cannot be read, parsed or validated."""


_DEVICE_FIELDS = frozenset(
    {
        "host",
        "model",
        "user",
        "password_file",
        "cipher",
        "kex_algorithm",
        "hostkey_algorithm",
        "extra_params",
        "filter_spec",
    }
)
_FILTER_FIELDS = frozenset({"trim_head", "trim_tail", "removal_patterns", "replace_rules"})


# Legacy key names, accepted as exact synonyms of the canonical ones.
_DEVICE_ALIASES = {
    "kexalgorithm": "kex_algorithm",
    "hostkeyalgorithm": "hostkey_algorithm",
    "extra_expect_params": "extra_params",
    "filter_config": "filter_spec",
}
_FILTER_ALIASES = {
    "trim_lines_head": "trim_head",
    "trim_lines_tail": "trim_tail",
    "filter_patterns": "removal_patterns",
    "replace_patterns": "replace_rules",
}


def _resolve_aliases(mapping: Mapping[str, Any], aliases: Mapping[str, str], context: str) -> dict[Any, Any]:
    resolved: dict[Any, Any] = {}
    for key, value in mapping.items():
        name = aliases.get(key, key)
        if name in resolved:
            raise ConfigLoadError(f"{context}: field '{name}' is given more than once (as '{key}').")
        resolved[name] = value
    return resolved


def _reject_unknown(mapping: Mapping[str, Any], allowed: frozenset[str], context: str) -> None:
    unknown = sorted(str(key) for key in mapping if key not in allowed)
    if unknown:
        raise ConfigLoadError(f"{context}: unknown field(s) {', '.join(repr(k) for k in unknown)}.")


def _require_string(mapping: Mapping[str, Any], field: str, context: str) -> str:
    value = mapping.get(field)
    if value is None or value == "":
        raise ConfigLoadError(f"{context}: missing required field '{field}'.")
    if not isinstance(value, str):
        raise ConfigLoadError(f"{context}: field '{field}' must be a string.")
    return value


def _optional_string(mapping: Mapping[str, Any], field: str, context: str) -> str | None:
    value = mapping.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigLoadError(f"{context}: field '{field}' must be a string when provided.")
    return value


def _string_list(value: Any, field: str, context: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigLoadError(f"{context}: field '{field}' must be a list of strings.")
    return tuple(value)


def _trim_count(value: Any, field: str, context: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigLoadError(f"{context}: field '{field}' must be an integer.")
    if value < 0:
        raise ConfigLoadError(f"{context}: field '{field}' must not be negative.")
    return value


def _parse_replace_rules(value: Any, context: str) -> tuple[tuple[str, str], ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigLoadError(f"{context}: field 'replace_rules' must be a list of [pattern, replacement] pairs.")

    rules: list[tuple[str, str]] = []
    for index, rule in enumerate(value, start=1):
        if (
            not isinstance(rule, (list, tuple))
            or len(rule) != 2
            or not all(isinstance(part, str) for part in rule)
        ):
            raise ConfigLoadError(
                f"{context}: replace rule #{index} must be a [pattern, replacement] pair of strings."
            )
        rules.append((rule[0], rule[1]))
    return tuple(rules)


def _parse_filter_spec(raw_filter: Any, context: str) -> FilterSpec | None:
    if raw_filter is None:
        return None
    if not isinstance(raw_filter, Mapping):
        raise ConfigLoadError(f"{context}: filter_spec must be a mapping.")

    filter_context = f"{context} filter_spec"
    raw_filter = _resolve_aliases(raw_filter, _FILTER_ALIASES, filter_context)
    _reject_unknown(raw_filter, _FILTER_FIELDS, filter_context)
    return FilterSpec(
        trim_head=_trim_count(raw_filter.get("trim_head"), "trim_head", filter_context),
        trim_tail=_trim_count(raw_filter.get("trim_tail"), "trim_tail", filter_context),
        removal_patterns=_string_list(raw_filter.get("removal_patterns"), "removal_patterns", filter_context),
        replace_rules=_parse_replace_rules(raw_filter.get("replace_rules"), filter_context),
    )


def parse_device(raw_device: Any, context: str) -> DeviceSpec:
    """Validate a single device mapping and build a :class:`DeviceSpec`."""

    if not isinstance(raw_device, Mapping):
        raise ConfigLoadError(f"{context}: each device must be a mapping.")

    raw_device = _resolve_aliases(raw_device, _DEVICE_ALIASES, context)
    _reject_unknown(raw_device, _DEVICE_FIELDS, context)
    host = _require_string(raw_device, "host", context)
    context = f"{context} '{host}'"

    return DeviceSpec(
        host=host,
        model=_require_string(raw_device, "model", context),
        user=_require_string(raw_device, "user", context),
        password_file=_require_string(raw_device, "password_file", context),
        cipher=_optional_string(raw_device, "cipher", context),
        kex_algorithm=_optional_string(raw_device, "kex_algorithm", context),
        hostkey_algorithm=_optional_string(raw_device, "hostkey_algorithm", context),
        extra_params=_string_list(raw_device.get("extra_params"), "extra_params", context),
        filter_spec=_parse_filter_spec(raw_device.get("filter_spec"), context),
    )


def _extract_device_list(raw_data: Any) -> list[Any]:
    if isinstance(raw_data, list):
        return raw_data
    if isinstance(raw_data, Mapping):
        _reject_unknown(raw_data, frozenset({"devices"}), "device list")
        raw_devices = raw_data.get("devices")
        if raw_devices is None:
            raise ConfigLoadError("device list must contain a 'devices' list.")
        if not isinstance(raw_devices, list):
            raise ConfigLoadError("The 'devices' field must be a list of device entries.")
        return raw_devices
    raise ConfigLoadError("Top-level device list structure must be a list or a mapping with 'devices'.")


def load_devices(path: Path, logger: logging.Logger | None = None) -> list[DeviceSpec]:
    """Load and strictly validate the device list (YAML or JSON)."""

    logger = logger or logging.getLogger(__name__)

    try:
        with path.open("r", encoding="utf-8") as handle:
            raw_data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigLoadError(f"Unable to read device list {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Failed to parse device list {path}: {exc}") from exc

    if raw_data is None:
        raw_data = []

    devices = [
        parse_device(raw_device, f"device #{index}")
        for index, raw_device in enumerate(_extract_device_list(raw_data), start=1)
    ]

    for device in devices:
        logger.debug(
            "device host=%s model=%s user=%s filter=%s",
            device.host,
            device.model,
            device.user,
            device.filter_spec is not None,
            extra={"device": device.host},
        )
    logger.info("loaded %d device(s) from %s", len(devices), path)
    return devices


def _extract_archive_section(local_cfg: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not isinstance(local_cfg, Mapping):
        return {}
    section = local_cfg.get("archive")
    return section if isinstance(section, Mapping) else {}


def _local_path(section: Mapping[str, Any], key: str) -> Path | None:
    value = section.get(key)
    if not value:
        return None
    candidate = Path(str(value)).expanduser()
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def _pick_path(
    name: str, cli_value: str | Path | None, local_value: Path | None, default: Path | None, logger: logging.Logger
) -> Path | None:
    if cli_value:
        source, value = "cli", Path(cli_value).expanduser()
    elif local_value is not None:
        source, value = "local_yml", local_value
    else:
        source, value = "default", default
    logger.debug("%s source=%s path=%s", name, source, value)
    return value


def resolve_settings(
    *,
    scripts_dir: str | Path | None,
    devices: str | Path | None,
    state_dir: str | Path | None,
    no_push: bool,
    summary_dir: str | Path | None,
    local_cfg: Mapping[str, Any] | None,
    logger: logging.Logger,
) -> ArchiveSettings:
    """Determine run settings with priority: CLI > local.yml > defaults."""

    section = _extract_archive_section(local_cfg)

    local_push = section.get("push")
    if no_push:
        push, push_source = False, "cli"
    elif isinstance(local_push, bool):
        push, push_source = local_push, "local_yml"
    else:
        push, push_source = DEFAULT_SETTINGS.push, "default"
    logger.debug("push resolved enabled=%s source=%s", push, push_source)

    return ArchiveSettings(
        scripts_dir=_pick_path(
            "scripts_dir", scripts_dir, _local_path(section, "scripts_dir"), DEFAULT_SETTINGS.scripts_dir, logger
        ),
        devices=_pick_path("devices", devices, _local_path(section, "devices"), DEFAULT_SETTINGS.devices, logger),
        state_dir=_pick_path(
            "state_dir", state_dir, _local_path(section, "state_dir"), DEFAULT_SETTINGS.state_dir, logger
        ),
        push=push,
        summary_dir=_pick_path("summary_dir", summary_dir, _local_path(section, "summary_dir"), None, logger),
    )
