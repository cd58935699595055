"""Kind/category/region allow-list predicates shared by every extractor."""

from typing import Iterable, Optional

from infra_discovery.models.infra_models import Category, ParseOptions, Resource


def _lowered(values: Iterable) -> set:
    return {str(getattr(v, "value", v)).lower() for v in values}


def should_include(kind: str, category: Category, options: Optional[ParseOptions]) -> bool:
    """
    Decide whether a resource of ``kind``/``category`` is emitted.

    A non-empty kind allow-list decides alone; the category allow-list is only
    consulted when no kinds are listed. Empty lists admit everything.
    """
    if options is None:
        return True
    if options.filter_kinds:
        return kind.lower() in _lowered(options.filter_kinds)
    if options.filter_categories:
        return str(getattr(category, "value", category)).lower() in _lowered(options.filter_categories)
    return True


def should_include_resource(resource: Resource, options: Optional[ParseOptions]) -> bool:
    return should_include(resource.kind, resource.category, options)


def should_scan_kinds(kinds: Iterable[str], categories: Iterable[Category], options: Optional[ParseOptions]) -> bool:
    """True when at least one of the kinds a live scan can emit passes the filter."""
    return any(should_include(k, c, options) for k, c in zip(kinds, categories))


def region_allowed(region: str, options: Optional[ParseOptions]) -> bool:
    """Case-insensitive region allow-list; an empty list admits every region."""
    if options is None or not options.regions:
        return True
    return (region or "").lower() in _lowered(options.regions)
