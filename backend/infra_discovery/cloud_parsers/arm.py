"""
ARM Template Parser

Reads Azure Resource Manager deployment templates (JSON). Each declared
resource becomes one Resource:
- id: the resource name (the symbolic key for language-version 2 templates)
- kind: resolved from the ARM type through the type mapping tables
- config: the properties bag, plus sku/kind when declared
- dependencies: dependsOn entries, verbatim

Nested child resources and inline nested deployments are expanded when
follow_nested_templates is set, within max_depth.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from infra_discovery.core.context import DiscoveryContext
from infra_discovery.core.errors import ParseFailureError
from infra_discovery.models.infra_models import Format, ParseOptions, ParseResult, Resource, ResourceKind
from infra_discovery.cloud_parsers.base import REDACTED, FileParser, Marker, load_json
from infra_discovery.cloud_parsers.type_mapping import is_windows_vm, new_resource

logger = logging.getLogger(__name__)

DEPLOYMENT_TEMPLATE_SCHEMA = "deploymenttemplate.json"
NESTED_DEPLOYMENT_TYPE = "microsoft.resources/deployments"
SECURE_PARAMETER_TYPES = ("securestring", "secureobject")


def _scalar(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return json.dumps(value, sort_keys=True)


class ARMTemplateParser(FileParser):
    """Extractor for ARM deployment template JSON files."""

    FORMATS = (Format.ARM,)
    EXTENSIONS = (".json",)

    # -- detection ------------------------------------------------------------

    def inspect(self, path: Path) -> Marker:
        try:
            with open(path, "r", encoding="utf-8") as f:
                template = json.load(f)
        except (OSError, ValueError):
            return Marker.NONE
        if not isinstance(template, dict):
            return Marker.NONE
        schema = str(template.get("$schema", "")).lower()
        if DEPLOYMENT_TEMPLATE_SCHEMA in schema:
            return Marker.PROVIDER
        if isinstance(template.get("resources"), (list, dict)) and "contentVersion" in template:
            return Marker.FORMAT
        return Marker.NONE

    # -- extraction -----------------------------------------------------------

    def parse_file(
        self,
        path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...] = (),
        follow_modules: bool = True,
    ) -> None:
        template = load_json(path)
        if not isinstance(template, dict):
            raise ParseFailureError(str(path), "template root is not an object")

        metadata = result.infrastructure.metadata
        metadata["source_file"] = str(path)
        if template.get("contentVersion"):
            metadata["content_version"] = str(template["contentVersion"])
        if template.get("$schema"):
            metadata["schema"] = str(template["$schema"])
        self._record_template_metadata(template, metadata, options)

        self._extract_resources(template.get("resources"), path, result, options, ctx, 0, parent=None)

    def _record_template_metadata(self, template: Dict[str, Any], metadata: Dict[str, Any], options: ParseOptions) -> None:
        for name, spec in (template.get("parameters") or {}).items():
            if not isinstance(spec, dict):
                continue
            param_type = str(spec.get("type", ""))
            default = spec.get("defaultValue")
            if param_type.lower() in SECURE_PARAMETER_TYPES and default is not None and not options.include_sensitive:
                default = REDACTED
            metadata[f"param.{name}"] = f"type={param_type}, default={_scalar(default) if default is not None else ''}"

        for name, value in (template.get("variables") or {}).items():
            metadata[f"var.{name}"] = _scalar(value)

        for name, spec in (template.get("outputs") or {}).items():
            if isinstance(spec, dict):
                metadata[f"output.{name}"] = f"type={spec.get('type', '')}, value={_scalar(spec.get('value'))}"

    def _iter_declarations(self, resources: Any) -> Iterator[Tuple[Optional[str], Dict[str, Any]]]:
        """Yield (symbolic_name, declaration) for array and object resource sections."""
        if isinstance(resources, list):
            for declaration in resources:
                if isinstance(declaration, dict):
                    yield None, declaration
        elif isinstance(resources, dict):
            for symbolic, declaration in resources.items():
                if isinstance(declaration, dict):
                    yield symbolic, declaration

    def _extract_resources(
        self,
        resources: Any,
        path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        depth: int,
        parent: Optional[Tuple[str, str, str]],
    ) -> None:
        for symbolic, declaration in self._iter_declarations(resources):
            ctx.check()
            resource = self._convert(symbolic, declaration, path, parent)
            if resource is None:
                result.warn(str(path), "resource without type or name skipped")
                continue
            self.emit(result, resource, options, str(path))

            native_type = str(declaration.get("type", ""))
            children = declaration.get("resources")
            if children and options.depth_allows(depth + 1):
                logger.debug(f"Following child resources of {resource.id} at depth {depth + 1}")
                result.stats.modules_followed += 1
                self._extract_resources(
                    children, path, result, options, ctx, depth + 1,
                    parent=(resource.id, str(resource.config.get("arm_type", native_type)), resource.name),
                )

            if native_type.lower() == NESTED_DEPLOYMENT_TYPE:
                nested = (declaration.get("properties") or {}).get("template")
                if isinstance(nested, dict) and options.depth_allows(depth + 1):
                    logger.debug(f"Expanding nested deployment {resource.id} at depth {depth + 1}")
                    result.stats.modules_followed += 1
                    self._extract_resources(nested.get("resources"), path, result, options, ctx, depth + 1, parent=None)

    def _convert(
        self,
        symbolic: Optional[str],
        declaration: Dict[str, Any],
        path: Path,
        parent: Optional[Tuple[str, str, str]],
    ) -> Optional[Resource]:
        native_type = str(declaration.get("type", "")).strip()
        name = str(declaration.get("name", "")).strip()
        if not native_type or not (name or symbolic):
            return None

        if parent is not None:
            _, parent_type, parent_name = parent
            if not native_type.lower().startswith("microsoft."):
                native_type = f"{parent_type}/{native_type}"
            if name and not name.startswith(parent_name + "/"):
                name = f"{parent_name}/{name}"

        resource_id = symbolic or name
        properties = declaration.get("properties") or {}
        if not isinstance(properties, dict):
            properties = {}

        resource = new_resource(resource_id, name or resource_id, native_type)
        if resource.kind == ResourceKind.LINUX_VIRTUAL_MACHINE.value and is_windows_vm(properties):
            resource.kind = ResourceKind.WINDOWS_VIRTUAL_MACHINE.value
        resource.region = str(declaration.get("location", "") or "")

        for key, value in properties.items():
            resource.set_config(key, value)
        for key in ("sku", "kind"):
            if key in declaration and key not in resource.config:
                resource.set_config(key, declaration[key])
        resource.set_config("arm_type", native_type)
        if declaration.get("apiVersion"):
            resource.set_config("api_version", declaration["apiVersion"])

        tags = declaration.get("tags") or {}
        if isinstance(tags, dict):
            for key, value in tags.items():
                if isinstance(value, str):
                    resource.add_tag(key, value)

        if parent is not None:
            resource.add_dependency(parent[0])
        depends_on = declaration.get("dependsOn") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        for dependency in depends_on:
            if isinstance(dependency, str):
                resource.add_dependency(dependency)

        return resource
