"""Loads a ruleset and its data files from disk, a zip archive or a package.

A ruleset directory looks like:

    ruleset.toml          # id, name, version and other settings
    traits/*.yaml         # TraitDefinition records
    templates/*.yaml      # TemplateDefinition records
    template_traits/*     # optional TemplateTraitRow records
    paths/*.yaml          # MoralPath records

Any data file may be TOML, JSON or YAML. YAML files may hold several
documents, one record each. A `__defaults__` file supplies default fields
for every record in its directory and below.
"""

from __future__ import annotations

import json
import logging
import pathlib
import tomllib
import typing
import zipfile
from copy import deepcopy
from importlib import resources
from importlib.resources.abc import Traversable

import pydantic
import yaml

from . import models

logger = logging.getLogger(__name__)

# Generic type for a particular model class.
M = typing.TypeVar("M", bound=pydantic.BaseModel)
# Generic type representing a generator that returns models of type M or BadDefinitions.
ModelGenerator = typing.Generator["M | models.BadDefinition", None, None]

PathLike = pathlib.Path | zipfile.Path | Traversable

# Data directory name -> (Ruleset field, record model).
DATA_DIRECTORIES: dict[str, tuple[str, type[models.BaseDefinition]]] = {
    "traits": ("traits", models.TraitDefinition),
    "templates": ("templates", models.TemplateDefinition),
    "template_traits": ("template_traits", models.TemplateTraitRow),
    "paths": ("paths", models.MoralPath),
}


def load_ruleset(path: str | PathLike, with_bad_defs: bool = False) -> models.Ruleset:
    """Load the specified ruleset by path.

    The ruleset path must be a directory containing a file named "ruleset"
    with a json, toml, or yaml/yml extension, either directly or one level
    down.

    Args:
        path: Path to a directory that contains a ruleset file.
            Alternatively, a path to a zipfile that contains a ruleset
            file and additional ruleset data, or `$dotted.package` to load
            from an installed package's resources.
        with_bad_defs: If true, a record that fails validation doesn't raise.
            Instead, the returned ruleset will have its `bad_defs` property
            populated with BadDefinition models. Consistency problems between
            records (such as unknown trait references) always raise when the
            ruleset's engine is built.
    """
    path = _resolve_path(path)
    ruleset_path = _find_file(path, stem="ruleset", depth=1)
    if not ruleset_path:
        raise ValueError(f"No ruleset file found within {path}")
    ruleset_dict = next(_parse_raw(ruleset_path), None)
    if not ruleset_dict:
        raise ValueError(f"Path {path} does not contain a ruleset definition.")
    ruleset = pydantic.TypeAdapter(models.Ruleset).validate_python(ruleset_dict)

    records: dict[str, list] = {field: [] for field, _ in DATA_DIRECTORIES.values()}
    bad_defs: list[models.BadDefinition] = []
    for subpath in _iter_dirs(ruleset_path.parent):
        if _name(subpath) not in DATA_DIRECTORIES:
            logger.debug(f"Ignoring directory {subpath}")
            continue
        field, model = DATA_DIRECTORIES[_name(subpath)]
        for record in _parse_directory(subpath, model, with_bad_defs=with_bad_defs):
            if isinstance(record, models.BadDefinition):
                logger.error(
                    f"Bad definition in {record.path}: {record.exception_message}"
                )
                bad_defs.append(record)
            else:
                records[field].append(record)

    ruleset = ruleset.model_copy(
        update={
            field: getattr(ruleset, field) + found for field, found in records.items()
        }
        | {"bad_defs": bad_defs}
    )
    logger.info(
        f"Loaded ruleset {ruleset.id} from {path}: "
        + ", ".join(f"{len(found)} {field}" for field, found in records.items())
    )
    return ruleset


def _resolve_path(path: str | PathLike) -> PathLike:
    if not isinstance(path, str):
        return path
    if path.startswith("$"):
        return resources.files(path[1:])
    if path.endswith(".zip"):
        return zipfile.Path(zipfile.ZipFile(path))
    return pathlib.Path(path)


def _parse_directory(
    path: PathLike, model: type[M], with_bad_defs: bool = False, defaults=None
) -> ModelGenerator:
    defaults = deepcopy(defaults) if defaults else {}
    for subpath in _iter_files(path, stem="__defaults__"):
        for raw_defaults in _parse_raw(subpath):
            defaults = _dict_merge(defaults, raw_defaults)
    for subpath in _iter_files(path):
        stem = _stem(subpath)
        if stem.startswith("_") or stem.startswith("."):
            # Ignore any other "special" files.
            continue
        yield from _parse(
            subpath, model, with_bad_defs=with_bad_defs, defaults=defaults
        )
    for subpath in _iter_dirs(path):
        yield from _parse_directory(
            subpath, model, with_bad_defs=with_bad_defs, defaults=defaults
        )


def _iter_dirs(path: PathLike) -> typing.Generator[PathLike, None, None]:
    for subpath in sorted((p for p in path.iterdir() if p.is_dir()), key=_name):
        if not _name(subpath).startswith(("_", ".")):
            yield subpath


def _iter_files(
    path: PathLike, stem=None, suffix=None
) -> typing.Generator[PathLike, None, None]:
    for subpath in sorted((p for p in path.iterdir() if p.is_file()), key=_name):
        if stem and _stem(subpath) != stem:
            continue
        if suffix and _suffix(subpath) != suffix:
            continue
        yield subpath


def _find_file(path: PathLike, stem=None, suffix=None, depth=0) -> PathLike | None:
    for subpath in _iter_files(path, stem=stem, suffix=suffix):
        return subpath

    if depth >= 1:
        for subpath in _iter_dirs(path):
            recur_path = _find_file(subpath, stem=stem, suffix=suffix, depth=depth - 1)
            if recur_path:
                return recur_path
    return None


def _name(path: PathLike) -> str:
    return path.name.rstrip("/")


def _stem(path: PathLike) -> str:
    return pathlib.PurePosixPath(_name(path)).stem


def _suffix(path: PathLike) -> str:
    return pathlib.PurePosixPath(_name(path)).suffix


def _parse(
    path: PathLike, model: type[M], with_bad_defs: bool = False, defaults=None
) -> ModelGenerator:
    for raw_data in _parse_raw(path):
        if not raw_data:
            continue
        if "__defaults__" in raw_data:
            # A YAML stream might have embedded defaults. These only apply
            # to the rest of this file.
            defaults = _dict_merge(defaults, raw_data["__defaults__"])
            continue
        data = _dict_merge(defaults, raw_data)
        data["def_path"] = str(path)
        try:
            yield pydantic.TypeAdapter(model).validate_python(data)
        except pydantic.ValidationError as exc:
            if with_bad_defs:
                yield models.BadDefinition(
                    path=str(path),
                    data=data,
                    raw_data=raw_data,
                    exception_type=repr(type(exc)),
                    exception_message=str(exc),
                )
            else:
                raise


def _dict_merge(a: dict | None, b: dict | None) -> dict:
    """Copy 'a' and update it with 'b', merging any sub-dicts they share."""
    merged = deepcopy(a or {})
    for key, value in (b or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _dict_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _parse_raw(path: PathLike) -> typing.Generator[dict, None, None]:
    match _suffix(path):
        case ".toml":
            parser = _parse_toml
        case ".json":
            parser = _parse_json
        case ".yaml" | ".yml":
            parser = _parse_yaml
        case _:
            return
    yield from parser(path)


def _parse_toml(path: PathLike) -> typing.Generator[dict, None, None]:
    with path.open("rb") as toml_file:
        yield tomllib.load(toml_file)


def _parse_json(path: PathLike) -> typing.Generator[dict, None, None]:
    with path.open("rb") as json_file:
        data = json.load(json_file)
    # A JSON file may hold a single record or a list of them.
    if isinstance(data, list):
        yield from data
    else:
        yield data


def _parse_yaml(path: PathLike) -> typing.Generator[dict, None, None]:
    with path.open("rb") as yaml_file:
        yield from yaml.safe_load_all(yaml_file)
