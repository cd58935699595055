"""
Bicep Parser

Bicep has no Python grammar, so this extractor reads it with line-anchored
patterns instead of a real parser:
- resource declarations: ``resource <symbol> '<Type@apiVersion>' = {``
- the declaration block: found by counting braces from the opening ``{``
- properties: top-level ``key: value`` lines inside the block, with nested
  ``{}``/``[]`` values read by the same rules
- dependencies: ``<symbol>.id|name|properties|outputs`` references plus
  explicit ``dependsOn`` entries and ``parent:``
- param/var/output/module statements: recorded as Infrastructure metadata

The brace counter does not understand string literals, so a brace inside a
quoted value shifts the block boundary.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Tuple

from infra_discovery.core.context import DiscoveryContext
from infra_discovery.models.infra_models import Format, ParseOptions, ParseResult, Resource, ResourceKind
from infra_discovery.cloud_parsers.base import REDACTED, FileParser, Marker
from infra_discovery.cloud_parsers.type_mapping import is_windows_vm, new_resource

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Patterns
# -----------------------------------------------------------------------------

PARAM_PATTERN = re.compile(r"^param\s+(\w+)\s+(\w+)(?:\s*=\s*(.+?))?\s*$", re.MULTILINE)
VAR_PATTERN = re.compile(r"^var\s+(\w+)\s*=\s*(.+?)\s*$", re.MULTILINE)
OUTPUT_PATTERN = re.compile(r"^output\s+(\w+)\s+(\w+)\s*=\s*(.+?)\s*$", re.MULTILINE)
MODULE_PATTERN = re.compile(r"^module\s+(\w+)\s+'([^']+)'\s*=", re.MULTILINE)
RESOURCE_PATTERN = re.compile(
    r"^[ \t]*resource\s+(\w+)\s+'([^']+)'\s*(existing\s*)?=\s*(?:if\s*\(.*?\)\s*)?\{",
    re.MULTILINE,
)
PROPERTY_PATTERN = re.compile(r"^\s*(\w+)\s*:\s*(.*?)\s*$")
REFERENCE_PATTERN = re.compile(r"\b([A-Za-z_]\w*)\.(id|name|properties|outputs)\b")

# Built-in functions/namespaces whose members look like symbol references
PSEUDO_SYMBOLS = frozenset({
    "resourceGroup",
    "subscription",
    "deployment",
    "environment",
    "tenant",
    "managementGroup",
    "az",
    "sys",
})


# -----------------------------------------------------------------------------
# Block reading
# -----------------------------------------------------------------------------

def block_body(content: str, open_brace: int) -> str:
    """
    Text between the brace at ``open_brace`` and its matching close.

    Braces are counted naively; an unbalanced block runs to the end of the
    content.
    """
    depth = 0
    for i in range(open_brace, len(content)):
        ch = content[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[open_brace + 1:i]
    return content[open_brace + 1:]


def _balance(text: str) -> int:
    return text.count("{") + text.count("[") - text.count("}") - text.count("]")


def _strip_quotes(raw: str) -> str:
    value = raw.strip().rstrip(",").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value


def _collect(lines: List[str], start: int, raw: str) -> Tuple[str, int]:
    """Gather a ``{...}``/``[...]`` value starting at ``raw`` on ``lines[start]``."""
    closer = "}" if raw[0] == "{" else "]"
    depth = _balance(raw)
    if depth <= 0:
        end = raw.rfind(closer)
        return raw[1:end if end > 0 else len(raw)], start + 1

    parts = [raw[1:]]
    i = start + 1
    while i < len(lines):
        line = lines[i]
        depth += _balance(line)
        if depth <= 0:
            end = line.rfind(closer)
            parts.append(line[:end] if end >= 0 else line)
            return "\n".join(parts), i + 1
        parts.append(line)
        i += 1
    return "\n".join(parts), i


def _read_value(opener: str, text: str) -> Any:
    return read_object(text) if opener == "{" else read_array(text)


def read_object(text: str) -> Dict[str, Any]:
    """Read top-level ``key: value`` pairs; nested lines belong to their parent key."""
    lines = text.split(",") if "\n" not in text else text.splitlines()
    result: Dict[str, Any] = {}
    depth = 0
    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        if depth == 0 and stripped and not stripped.startswith("//"):
            match = PROPERTY_PATTERN.match(line)
            if match:
                key, raw = match.group(1), match.group(2)
                if raw[:1] in ("{", "["):
                    nested, i = _collect(lines, i, raw)
                    result[key] = _read_value(raw[0], nested)
                    continue
                result[key] = _strip_quotes(raw)
        depth = max(0, depth + _balance(line))
        i += 1
    return result


def read_array(text: str) -> List[Any]:
    """Read a Bicep array: one item per line, or comma separated on one line."""
    if "\n" not in text:
        return [_strip_quotes(p) for p in text.split(",") if p.strip()]

    lines = text.splitlines()
    items: List[Any] = []
    i = 0
    while i < len(lines):
        stripped = lines[i].strip()
        if not stripped or stripped.startswith("//"):
            i += 1
            continue
        if stripped[0] in ("{", "["):
            nested, i = _collect(lines, i, stripped)
            items.append(_read_value(stripped[0], nested))
            continue
        items.append(_strip_quotes(stripped))
        i += 1
    return items


def _preceded_by_secure(content: str, position: int) -> bool:
    before = content[:position].rstrip().splitlines()
    return bool(before) and before[-1].strip().lower().startswith("@secure()")


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------

class BicepParser(FileParser):
    """Extractor for Bicep files."""

    FORMATS = (Format.BICEP,)
    EXTENSIONS = (".bicep",)
    PROVIDER_MARKER_CONFIDENCE = 0.95

    def inspect(self, path: Path) -> Marker:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, ValueError):
            return Marker.NONE
        for match in RESOURCE_PATTERN.finditer(content):
            if match.group(2).lower().startswith("microsoft."):
                return Marker.PROVIDER
        return Marker.FORMAT

    def parse_file(
        self,
        path: Path,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...] = (),
        follow_modules: bool = True,
    ) -> None:
        content = path.read_text(encoding="utf-8")
        metadata = result.infrastructure.metadata

        for match in PARAM_PATTERN.finditer(content):
            name, param_type, default = match.group(1), match.group(2), match.group(3) or ""
            if default and _preceded_by_secure(content, match.start()) and not options.include_sensitive:
                default = REDACTED
            metadata[f"param.{name}"] = f"type={param_type}, default={default}"

        for match in VAR_PATTERN.finditer(content):
            metadata[f"var.{match.group(1)}"] = match.group(2)

        for match in OUTPUT_PATTERN.finditer(content):
            metadata[f"output.{match.group(1)}"] = f"type={match.group(2)}, value={match.group(3)}"

        for match in RESOURCE_PATTERN.finditer(content):
            ctx.check()
            resource = self._convert(match, content, path)
            self.emit(result, resource, options, str(path))

        for match in MODULE_PATTERN.finditer(content):
            module_name, source = match.group(1), match.group(2)
            metadata[f"module.{module_name}"] = source
            if follow_modules:
                self._follow_module(path, source, result, options, ctx, ancestors)

    def _convert(self, match: "re.Match[str]", content: str, path: Path) -> Resource:
        symbol, declared_type = match.group(1), match.group(2)
        native_type, _, api_version = declared_type.partition("@")

        body = block_body(content, match.end() - 1)
        config = read_object(body)

        resource = new_resource(symbol, symbol, native_type)
        properties = config.get("properties")
        if (
            resource.kind == ResourceKind.LINUX_VIRTUAL_MACHINE.value
            and isinstance(properties, dict)
            and is_windows_vm(properties)
        ):
            resource.kind = ResourceKind.WINDOWS_VIRTUAL_MACHINE.value

        explicit = config.pop("dependsOn", None)

        for key, value in config.items():
            resource.set_config(key, value)
        resource.set_config("bicep_type", declared_type)
        resource.set_config("source_file", str(path))
        if api_version:
            resource.set_config("api_version", api_version)
        if match.group(3):
            resource.set_config("existing", True)

        if isinstance(config.get("name"), str):
            resource.name = config["name"]
        if isinstance(config.get("location"), str):
            resource.region = config["location"]
        tags = config.get("tags")
        if isinstance(tags, dict):
            for key, value in tags.items():
                if isinstance(value, str):
                    resource.add_tag(key, value)

        if isinstance(config.get("parent"), str):
            resource.add_dependency(config["parent"])
        for ref, _ in REFERENCE_PATTERN.findall(body):
            if ref not in PSEUDO_SYMBOLS and ref != symbol:
                resource.add_dependency(ref)
        if isinstance(explicit, list):
            for dependency in explicit:
                if isinstance(dependency, str) and dependency:
                    resource.add_dependency(dependency)

        return resource

    def _follow_module(
        self,
        path: Path,
        source: str,
        result: ParseResult,
        options: ParseOptions,
        ctx: DiscoveryContext,
        ancestors: Tuple[Path, ...],
    ) -> None:
        # Registry (br:) and template-spec (ts:) modules are not local files
        if ":" in source or not source.endswith(".bicep"):
            return
        if not options.depth_allows(len(ancestors) + 1):
            return
        target = (path.parent / source).resolve()
        chain = ancestors + (path.resolve(),)
        if target in chain:
            result.warn(str(path), f"module cycle through {source} not followed")
            return
        if not target.is_file():
            result.warn(str(path), f"module source {source} not found")
            return
        logger.debug(f"Following Bicep module {source} from {path}")
        if self.parse_unit(target, result, options, ctx, chain):
            result.stats.modules_followed += 1
