"""
Terraform State Parser

Reads Terraform state snapshots (format versions 3 and 4). Every instance of
a managed ``azurerm_*`` resource becomes one Resource:
- id: ``<type>.<name>``, with ``[index]`` appended for counted/for_each instances
- config: the instance's full attribute bag (sensitive paths redacted unless
  include_sensitive is set)
- dependencies: the instance's recorded dependencies with module paths removed

Data sources and non-Azure resources are skipped.
"""

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple

from infra_discovery.core.context import DiscoveryContext
from infra_discovery.core.errors import ParseFailureError
from infra_discovery.models.infra_models import Format, ParseOptions, ParseResult, Resource
from infra_discovery.cloud_parsers.base import REDACTED, FileParser, Marker, load_json
from infra_discovery.cloud_parsers.type_mapping import new_resource

logger = logging.getLogger(__name__)

SUPPORTED_STATE_VERSIONS = (3, 4)
AZURE_TYPE_PREFIX = "azurerm_"
MODULE_PREFIX_PATTERN = re.compile(r'^(?:module\.[^.\[]+(?:\[[^\]]*\])?\.)+')


def format_index(index_key: Any) -> str:
    """Render an instance key the way Terraform addresses it."""
    if isinstance(index_key, bool) or not isinstance(index_key, int):
        return f'["{index_key}"]'
    return f"[{index_key}]"


def strip_module_path(address: str) -> str:
    return MODULE_PREFIX_PATTERN.sub("", address)


def _managed_resources(state: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        r for r in state.get("resources") or []
        if isinstance(r, dict) and r.get("mode", "managed") == "managed"
    ]


def _redact_path(attributes: Any, steps: List[Dict[str, Any]]) -> None:
    """Replace the value at a sensitive_attributes path with the redaction marker."""
    target = attributes
    for position, step in enumerate(steps):
        key = step.get("value")
        last = position == len(steps) - 1
        if isinstance(target, dict) and key in target:
            if last:
                target[key] = REDACTED
            else:
                target = target[key]
        elif isinstance(target, list) and isinstance(key, int) and 0 <= key < len(target):
            if last:
                target[key] = REDACTED
            else:
                target = target[key]
        else:
            return


class TerraformStateParser(FileParser):
    """Extractor for ``.tfstate`` snapshots."""

    FORMATS = (Format.TFSTATE,)
    EXTENSIONS = (".tfstate",)
    FORMAT_ONLY_CONFIDENCE = 0.5

    def _azure_share(self, state: Dict[str, Any]) -> Tuple[int, int]:
        managed = _managed_resources(state)
        azure = sum(1 for r in managed if str(r.get("type", "")).startswith(AZURE_TYPE_PREFIX))
        return azure, len(managed)

    def inspect(self, path: Path) -> Marker:
        try:
            with open(path, "r", encoding="utf-8") as f:
                state = json.load(f)
        except (OSError, ValueError):
            return Marker.NONE
        if not isinstance(state, dict) or "version" not in state:
            return Marker.NONE
        azure, _ = self._azure_share(state)
        return Marker.PROVIDER if azure else Marker.FORMAT

    def file_confidence(self, path: Path, marker: Marker) -> float:
        """0.85 to 0.95, scaled by the share of managed resources that are Azure."""
        if marker != Marker.PROVIDER:
            return self.FORMAT_ONLY_CONFIDENCE
        try:
            state = load_json(path)
            azure, total = self._azure_share(state)
        except (OSError, ParseFailureError):
            return self.FORMAT_ONLY_CONFIDENCE
        return round(0.85 + 0.1 * (azure / total), 4) if total else self.FORMAT_ONLY_CONFIDENCE

    def parse_file(
        self,
        path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...] = (),
        follow_modules: bool = True,
    ) -> None:
        state = load_json(path)
        if not isinstance(state, dict):
            raise ParseFailureError(str(path), "state root is not an object")

        version = state.get("version")
        if version not in SUPPORTED_STATE_VERSIONS:
            raise ParseFailureError(str(path), f"unsupported state version: {version}")

        metadata = result.infrastructure.metadata
        metadata["source_file"] = str(path)
        metadata["state_version"] = str(version)
        if state.get("terraform_version"):
            metadata["terraform_version"] = str(state["terraform_version"])
        if state.get("serial") is not None:
            metadata["serial"] = state["serial"]
        if state.get("lineage"):
            metadata["lineage"] = str(state["lineage"])

        for name, output in (state.get("outputs") or {}).items():
            if not isinstance(output, dict):
                continue
            value = output.get("value")
            if output.get("sensitive") and not options.include_sensitive:
                value = REDACTED
            metadata[f"output.{name}"] = value if isinstance(value, (str, int, float, bool)) or value is None else json.dumps(value, sort_keys=True)

        for state_resource in _managed_resources(state):
            ctx.check()
            resource_type = str(state_resource.get("type", ""))
            if not resource_type.startswith(AZURE_TYPE_PREFIX):
                continue
            group_name = str(state_resource.get("name", ""))
            for instance in state_resource.get("instances") or []:
                resource = self._convert(resource_type, group_name, instance, options)
                self.emit(result, resource, options, str(path))

    def _convert(
        self,
        resource_type: str,
        group_name: str,
        instance: Dict[str, Any],
        options: ParseOptions,
    ) -> Resource:
        resource_id = f"{resource_type}.{group_name}"
        if instance.get("index_key") is not None:
            resource_id += format_index(instance["index_key"])

        resource = new_resource(resource_id, group_name, resource_type, terraform=True)

        attributes = copy.deepcopy(instance.get("attributes") or {})
        if not options.include_sensitive:
            for steps in instance.get("sensitive_attributes") or []:
                if isinstance(steps, list):
                    _redact_path(attributes, steps)
        for key, value in attributes.items():
            resource.set_config(key, value)

        if isinstance(attributes.get("name"), str):
            resource.name = attributes["name"]
        if isinstance(attributes.get("location"), str):
            resource.region = attributes["location"]
        if isinstance(attributes.get("id"), str):
            resource.native_id = attributes["id"]
        tags = attributes.get("tags")
        if isinstance(tags, dict):
            for key, value in tags.items():
                if isinstance(value, str):
                    resource.add_tag(key, value)

        for dependency in instance.get("dependencies") or []:
            if isinstance(dependency, str):
                resource.add_dependency(strip_module_path(dependency))

        return resource
