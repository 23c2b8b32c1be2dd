"""Schema validation for raw configuration documents.

Three entry points:

* ``normalize`` moves top-level plugin namespaces under ``plugins``.
* ``validate_partial`` checks a deep-partial document (the base config or a
  plugin fragment): every key it provides must exist in the schema and every
  leaf it provides must have the right type, but required fields may be
  missing.
* ``validate_config`` fully validates a merged document and returns the
  frozen ``Config``.

Pydantic errors are re-raised as ``SchemaValidationError``; type errors on an
identity field inside a fragment become ``MergeConflictError``.
"""

from __future__ import annotations

import inspect
import types
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

from kernel_build.errors import MergeConflictError, SchemaValidationError
from kernel_build.schema.models import (
    IDENTITY_FIELDS,
    SECTION_KEYS,
    Android,
    Append,
    Config,
    IOS,
)
from kernel_build.schema.namespaces import NamespaceRegistry

_PLATFORM_SECTIONS: tuple[tuple[str, type[BaseModel]], ...] = (
    ("ios", IOS),
    ("android", Android),
)


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def normalize(raw: Mapping[str, Any], *, source: str = "") -> dict[str, Any]:
    """Return *raw* with every top-level namespace key moved into ``plugins``.

    The input is not modified.  Nested values are shared with the input, so
    callers that mutate the result must copy it first.

    Raises:
        SchemaValidationError: If *raw* is not a mapping, ``plugins`` is not a
            mapping, or a namespace is given both at top level and under
            ``plugins``.
    """
    if not isinstance(raw, Mapping):
        raise SchemaValidationError(
            "Configuration must be a mapping",
            source=source,
            errors=[_error("dict_type", (), "Input should be a valid dictionary", raw)],
        )

    declared = raw.get("plugins") or {}
    if not isinstance(declared, Mapping):
        raise SchemaValidationError(
            "'plugins' must be a mapping of namespace -> app payloads",
            source=source,
            errors=[_error("dict_type", ("plugins",), "Input should be a valid dictionary", declared)],
        )

    result: dict[str, Any] = {}
    plugins: dict[str, Any] = dict(declared)
    for key, value in raw.items():
        if key == "plugins":
            continue
        if key in SECTION_KEYS:
            result[key] = value
            continue
        if key in declared:
            raise SchemaValidationError(
                f"Namespace '{key}' is given both at top level and under 'plugins'",
                source=source,
                errors=[_error("duplicate_namespace", ("plugins", key), "Duplicate namespace", value)],
            )
        plugins[key] = value

    if plugins:
        result["plugins"] = plugins
    return result


# ---------------------------------------------------------------------------
# Deep-partial validation
# ---------------------------------------------------------------------------

def validate_partial(
    raw: Mapping[str, Any],
    *,
    source: str = "",
    namespaces: NamespaceRegistry | None = None,
    strict_namespaces: bool = True,
    identity_conflicts: bool = True,
) -> dict[str, Any]:
    """Validate a deep-partial configuration document.

    Args:
        raw: The base configuration or a plugin fragment.
        source: Label used in error messages.
        namespaces: Registered namespaces.  ``None`` disables namespace checks.
        strict_namespaces: Reject namespaces no registered plugin owns.
        identity_conflicts: Raise ``MergeConflictError`` (rather than a plain
            ``SchemaValidationError``) for identity field type errors.

    Returns:
        The normalised document.
    """
    data = normalize(raw, source=source)
    errors: list[dict[str, Any]] = []

    for section, model in _PLATFORM_SECTIONS:
        value = data.get(section)
        if value is None:
            continue
        if not isinstance(value, Mapping):
            errors.append(_error("dict_type", (section,), "Input should be a valid dictionary", value))
            continue
        _walk(model, value, (section,), errors)

    plugins = data.get("plugins") or {}
    for namespace, apps in plugins.items():
        model = _check_namespace(namespace, apps, namespaces, strict_namespaces, errors)
        if model is None:
            continue
        for app_key, payload in apps.items():
            loc = ("plugins", namespace, app_key)
            if payload is None or isinstance(payload, model):
                continue
            if not isinstance(payload, Mapping):
                errors.append(_error("dict_type", loc, "Input should be a valid dictionary", payload))
                continue
            _walk(model, payload, loc, errors)

    if errors:
        raise _classify(errors, source, identity_conflicts)
    return data


def validate_payload(model: type[BaseModel], payload: Any, *, source: str = "") -> BaseModel:
    """Fully validate a plugin's ``plugin`` settings payload against *model*.

    ``Append`` markers are validated as the items they append.
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(_unwrap(payload))
    except ValidationError as exc:
        errors = _relocate(exc, ("plugin",))
        raise SchemaValidationError(_summarize(errors), source=source, errors=errors) from exc


# ---------------------------------------------------------------------------
# Full validation
# ---------------------------------------------------------------------------

def validate_config(
    raw: Mapping[str, Any],
    *,
    source: str = "merged",
    namespaces: NamespaceRegistry | None = None,
    strict_namespaces: bool = True,
) -> Config:
    """Validate a complete configuration document and return the frozen ``Config``."""
    data = normalize(raw, source=source)
    errors: list[dict[str, Any]] = []

    plugins: dict[str, dict[str, Any]] = {}
    for namespace, apps in (data.get("plugins") or {}).items():
        if _check_namespace(namespace, apps, namespaces, strict_namespaces, errors, want_model=False) is None:
            continue
        validated: dict[str, Any] = {}
        for app_key, payload in apps.items():
            try:
                validated[app_key] = (
                    namespaces.validate_payload(namespace, payload) if namespaces else payload
                )
            except ValidationError as exc:
                errors.extend(_relocate(exc, ("plugins", namespace, app_key)))
        plugins[namespace] = validated

    sections = {key: value for key, value in data.items() if key != "plugins"}
    config: Config | None = None
    try:
        config = Config.model_validate({**sections, "plugins": plugins})
    except ValidationError as exc:
        errors.extend(_relocate(exc, ()))

    if errors or config is None:
        raise _classify(errors, source, identity_conflicts=False)
    return config


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_SENTINEL = object()


def _check_namespace(
    namespace: str,
    apps: Any,
    namespaces: NamespaceRegistry | None,
    strict: bool,
    errors: list[dict[str, Any]],
    want_model: bool = True,
) -> Any:
    """Record namespace-level errors.

    Returns the namespace model (or a truthy sentinel when *want_model* is
    false) if the payloads should be validated further, else ``None``.
    """
    loc = ("plugins", namespace)
    if namespaces is not None and namespace not in namespaces:
        if strict:
            errors.append(_error(
                "unknown_namespace", loc,
                f"No registered plugin owns namespace '{namespace}'", apps,
            ))
            return None
    if not isinstance(apps, Mapping):
        errors.append(_error("dict_type", loc, "Input should be a valid dictionary", apps))
        return None
    if not want_model:
        return _SENTINEL
    if namespaces is None:
        return None
    return namespaces.model_for(namespace)


def _walk(
    model: type[BaseModel],
    data: Mapping[str, Any],
    loc: tuple[Any, ...],
    errors: list[dict[str, Any]],
) -> None:
    fields = _field_names(model)
    forbid_extra = model.model_config.get("extra") == "forbid"
    for key, value in data.items():
        if value is None:
            continue
        name = fields.get(key)
        if name is None:
            if forbid_extra:
                errors.append(_error("extra_forbidden", loc + (key,), "Extra inputs are not permitted", value))
            continue

        annotation = model.model_fields[name].annotation
        if isinstance(value, Append):
            value = value.items
        nested = _nested_model(annotation)
        if nested is not None and isinstance(value, Mapping):
            _walk(nested, value, loc + (key,), errors)
            continue
        try:
            _adapter(annotation).validate_python(value)
        except ValidationError as exc:
            errors.extend(_relocate(exc, loc + (key,)))


@lru_cache(maxsize=None)
def _field_names(model: type[BaseModel]) -> dict[str, str]:
    """Map both field names and aliases to the field name."""
    names: dict[str, str] = {}
    for name, info in model.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


@lru_cache(maxsize=None)
def _adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


def _nested_model(annotation: Any) -> type[BaseModel] | None:
    """Return the model class behind ``Model`` or ``Optional[Model]``."""
    if get_origin(annotation) in (Union, types.UnionType):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) != 1:
            return None
        annotation = args[0]
    if inspect.isclass(annotation) and issubclass(annotation, BaseModel):
        return annotation
    return None


def _unwrap(value: Any) -> Any:
    if isinstance(value, Append):
        return [_unwrap(item) for item in value.items]
    if isinstance(value, Mapping):
        return {key: _unwrap(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_unwrap(item) for item in value]
    return value


def _relocate(exc: ValidationError, prefix: tuple[Any, ...]) -> list[dict[str, Any]]:
    return [
        {**err, "loc": prefix + tuple(err.get("loc", ()))}
        for err in exc.errors(include_url=False)
    ]


def _error(kind: str, loc: tuple[Any, ...], msg: str, value: Any = None) -> dict[str, Any]:
    return {"type": kind, "loc": loc, "msg": msg, "input": value}


def _summarize(errors: list[dict[str, Any]], limit: int = 3) -> str:
    parts = [
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in errors[:limit]
    ]
    if len(errors) > limit:
        parts.append(f"... and {len(errors) - limit} more")
    return "; ".join(parts)


def _classify(
    errors: list[dict[str, Any]], source: str, identity_conflicts: bool
) -> SchemaValidationError:
    if identity_conflicts:
        conflicts = [err for err in errors if tuple(err["loc"][:2]) in IDENTITY_FIELDS]
        if conflicts:
            return MergeConflictError(
                f"Incompatible override of identity field(s): {_summarize(conflicts)}",
                source=source,
                errors=errors,
            )
    return SchemaValidationError(_summarize(errors), source=source, errors=errors)
