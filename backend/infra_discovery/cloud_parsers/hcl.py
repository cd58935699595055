"""
Terraform HCL Parser

Reads Terraform configuration (``.tf``) with python-hcl2. Each ``resource``
block whose type starts with ``azurerm_`` becomes one Resource:
- id: ``<type>.<name>``
- config: every attribute that is a literal; attributes built from
  interpolations (variables, locals, other resources, functions) cannot be
  evaluated statically and are dropped with a warning
- dependencies: resource references found in dropped expressions, plus
  ``depends_on`` entries

Variables, outputs, locals and module sources are recorded as metadata.
Local module directories are followed for single-file parses.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

import hcl2

from infra_discovery.core.context import DiscoveryContext
from infra_discovery.core.errors import ParseFailureError
from infra_discovery.models.infra_models import Format, ParseOptions, ParseResult, Resource
from infra_discovery.cloud_parsers.base import REDACTED, FileParser, Marker
from infra_discovery.cloud_parsers.type_mapping import new_resource

logger = logging.getLogger(__name__)

AZURE_MARKERS = ('provider "azurerm"', 'resource "azurerm_', 'data "azurerm_')
AZURE_TYPE_PREFIX = "azurerm_"
INTERPOLATION = "${"
REFERENCE_PATTERN = re.compile(r"(?<![\w.])((?:data\.)?azurerm_\w+\.[A-Za-z_][\w-]*)")
META_KEY_PREFIX = "__"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _clean(value: Any) -> Any:
    """Strip decoder artifacts (line metadata, quoted strings) from a decoded value."""
    if isinstance(value, str):
        return _unquote(value)
    if isinstance(value, dict):
        return {_unquote(str(k)): _clean(v) for k, v in value.items() if not str(k).startswith(META_KEY_PREFIX)}
    if isinstance(value, list):
        return [_clean(v) for v in value]
    return value


def is_literal(value: Any) -> bool:
    """True when no interpolation occurs anywhere inside ``value``."""
    if isinstance(value, str):
        return INTERPOLATION not in value
    if isinstance(value, dict):
        return all(is_literal(v) for v in value.values())
    if isinstance(value, list):
        return all(is_literal(v) for v in value)
    return True


def _expression_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def _display(value: Any) -> str:
    """Render a type constraint or default for metadata (``${string}`` -> ``string``)."""
    text = _expression_text(value) if value is not None else ""
    if text.startswith(INTERPOLATION) and text.endswith("}"):
        return text[2:-1]
    return text


def _iter_named(blocks: Any) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield (label, body) pairs from a decoded ``{label: body}`` mapping or list of them."""
    items = blocks if isinstance(blocks, list) else [blocks]
    for item in items:
        if not isinstance(item, dict):
            continue
        for label, body in item.items():
            if str(label).startswith(META_KEY_PREFIX):
                continue
            if isinstance(body, list):
                body = body[0] if body else {}
            if isinstance(body, dict):
                yield _unquote(str(label)), body


class TerraformHCLParser(FileParser):
    """Extractor for Terraform ``.tf`` configuration files."""

    FORMATS = (Format.TERRAFORM,)
    EXTENSIONS = (".tf",)
    PROVIDER_MARKER_CONFIDENCE = 0.85

    def inspect(self, path: Path) -> Marker:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, ValueError):
            return Marker.NONE
        if any(marker in content for marker in AZURE_MARKERS):
            return Marker.PROVIDER
        return Marker.FORMAT

    def load(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return hcl2.load(f)
        except (OSError, UnicodeDecodeError):
            raise
        except Exception as e:
            # python-hcl2 surfaces lark parse errors, which carry a line attribute
            raise ParseFailureError(str(path), f"invalid HCL: {e}", line=getattr(e, "line", None)) from e

    def parse_file(
        self,
        path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...] = (),
        follow_modules: bool = True,
    ) -> None:
        parsed = self.load(path)
        metadata = result.infrastructure.metadata
        metadata["source_file"] = str(path)

        self._record_variables(parsed, metadata, options)
        self._record_outputs(parsed, metadata, options)
        self._record_locals(parsed, metadata)

        for block in parsed.get("resource") or []:
            if not isinstance(block, dict):
                continue
            for resource_type, named in block.items():
                resource_type = _unquote(str(resource_type))
                if not resource_type.startswith(AZURE_TYPE_PREFIX):
                    continue
                for name, body in _iter_named(named):
                    ctx.check()
                    resource = self._convert(resource_type, name, body, path, result)
                    self.emit(result, resource, options, str(path))

        for name, body in _iter_named(parsed.get("module") or []):
            source = _clean(body.get("source", ""))
            if not isinstance(source, str):
                continue
            metadata[f"module.{name}"] = source
            if follow_modules:
                self._follow_module(path, name, source, result, options, ctx, ancestors)

    # -- resources ------------------------------------------------------------

    def _convert(
        self,
        resource_type: str,
        name: str,
        body: Dict[str, Any],
        path: Path,
        result: ParseResult,
    ) -> Resource:
        resource_id = f"{resource_type}.{name}"
        resource = new_resource(resource_id, name, resource_type, terraform=True)
        references: List[str] = []

        for attribute, raw in body.items():
            if str(attribute).startswith(META_KEY_PREFIX):
                continue
            value = _clean(raw)
            if attribute == "depends_on":
                for entry in value if isinstance(value, list) else [value]:
                    references.extend(REFERENCE_PATTERN.findall(_expression_text(entry)))
                continue
            if is_literal(value):
                resource.set_config(attribute, value)
                continue
            expression = _expression_text(value)
            references.extend(REFERENCE_PATTERN.findall(expression))
            result.warn(
                f"{path}:{resource_id}.{attribute}",
                f"unresolved: attribute '{attribute}' is not statically evaluable ({expression})",
            )

        resource.set_config("terraform_type", resource_type)

        if isinstance(resource.config.get("name"), str):
            resource.name = resource.config["name"]
        if isinstance(resource.config.get("location"), str):
            resource.region = resource.config["location"]
        tags = resource.config.get("tags")
        if isinstance(tags, dict):
            for key, value in tags.items():
                if isinstance(value, str):
                    resource.add_tag(key, value)

        for reference in references:
            if reference != resource_id:
                resource.add_dependency(reference)
        return resource

    # -- metadata -------------------------------------------------------------

    def _record_variables(self, parsed: Dict[str, Any], metadata: Dict[str, Any], options: ParseOptions) -> None:
        for name, body in _iter_named(parsed.get("variable") or []):
            body = _clean(body)
            default = body.get("default")
            if body.get("sensitive") is True and default is not None and not options.include_sensitive:
                default = REDACTED
            metadata[f"var.{name}"] = f"type={_display(body.get('type'))}, default={_display(default)}"

    def _record_outputs(self, parsed: Dict[str, Any], metadata: Dict[str, Any], options: ParseOptions) -> None:
        for name, body in _iter_named(parsed.get("output") or []):
            body = _clean(body)
            value = body.get("value")
            if body.get("sensitive") is True and not options.include_sensitive:
                value = REDACTED
            metadata[f"output.{name}"] = _display(value)

    def _record_locals(self, parsed: Dict[str, Any], metadata: Dict[str, Any]) -> None:
        for block in parsed.get("locals") or []:
            if not isinstance(block, dict):
                continue
            for name, value in _clean(block).items():
                if is_literal(value):
                    metadata[f"local.{name}"] = value if isinstance(value, (str, int, float, bool)) else _expression_text(value)

    # -- modules --------------------------------------------------------------

    def _follow_module(
        self,
        path: Path,
        module_name: str,
        source: str,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...],
    ) -> None:
        if not source.startswith(("./", "../")):
            return
        if not options.depth_allows(len(ancestors) + 1):
            return
        target = (path.parent / source).resolve()
        chain = ancestors + (path.resolve(),)
        if target in {p.parent for p in chain}:
            result.warn(str(path), f"module {module_name} cycles back to {source}; not followed")
            return
        if not target.is_dir():
            result.warn(str(path), f"module {module_name} source {source} not found")
            return

        logger.debug(f"Following Terraform module {module_name} at {target}")
        followed = False
        for tf_file in sorted(target.glob("*.tf")):
            followed = self.parse_unit(tf_file, result, options, ctx, chain) or followed
        if followed:
            result.stats.modules_followed += 1
