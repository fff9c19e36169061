"""Target profile loading and validation for YAML-based blesensor profiles."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from blesensor.core.errors import ProfileLoadError, ProfileValidationError
from blesensor.core.model import TargetDescriptor, TargetProfile, TimingPolicy
from blesensor.core.target_match import normalize_uuid

LOGGER = logging.getLogger(__name__)

_TIMEOUT_KEYS = {
    "scan_s": "scan_timeout_s",
    "connect_s": "connect_timeout_s",
    "discovery_s": "discovery_timeout_s",
    "first_value_s": "first_value_timeout_s",
}


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# Keep "yes"/"no"/"on"/"off" as strings; only JSON-style true/false are booleans.
for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, TargetProfile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("blesensor.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "blesensor/profiles", xdg_data / "blesensor/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_uuid(value: str, *, context: str) -> str:
    try:
        return normalize_uuid(value)
    except ValueError as exc:
        raise ProfileValidationError(f"{context}: {exc}") from exc


def _normalize_address(value: str, *, context: str) -> str:
    address = value.strip()
    if not address:
        raise ProfileValidationError(f"{context} must not be empty")
    return address


def _build_timing(doc: dict[str, Any]) -> TimingPolicy:
    timeouts = doc.get("timeouts", {})
    kwargs: dict[str, Any] = {}
    for key, field_name in _TIMEOUT_KEYS.items():
        if key in timeouts:
            value = timeouts[key]
            kwargs[field_name] = float(value) if value is not None else None
    if "backoff_s" in doc:
        kwargs["backoff_s"] = float(doc["backoff_s"])
    return TimingPolicy(**kwargs)


def _build_profile(doc: dict[str, Any], source: Path | Traversable, validator: Any) -> TargetProfile:
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    target_doc = doc["target"]
    service_uuid = target_doc.get("service_uuid")
    target = TargetDescriptor(
        address=_normalize_address(target_doc["address"], context=f"{doc['id']}.target.address"),
        characteristic_uuid=_normalize_uuid(
            target_doc["characteristic_uuid"],
            context=f"{doc['id']}.target.characteristic_uuid",
        ),
        service_uuid=_normalize_uuid(service_uuid, context=f"{doc['id']}.target.service_uuid")
        if service_uuid is not None
        else None,
    )

    return TargetProfile(
        id=doc["id"],
        name=doc.get("name", doc["id"]),
        target=target,
        timing=_build_timing(doc),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("blesensor.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, TargetProfile] = {}
    warnings: list[str] = []
    validator = _load_schema_validator()

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        profile = _build_profile(_read_yaml(path), path, validator)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        profile = _build_profile(_read_yaml(path), path, validator)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
