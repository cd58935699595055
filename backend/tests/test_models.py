import datetime
from enum import Enum

from infra_discovery.models.infra_models import (
    Category,
    CloudProvider,
    Infrastructure,
    ParseOptions,
    ParseResult,
    Resource,
    normalize_config_value,
)


class Tier(Enum):
    PREMIUM = "Premium"


class FakeSdkModel:
    def as_dict(self):
        return {"sku": Tier.PREMIUM, "created": datetime.datetime(2024, 1, 2, 3, 4, 5)}


def test_normalize_config_value_handles_sdk_models_and_enums():
    value = normalize_config_value({"model": FakeSdkModel(), "ports": (80, 443), "flag": True})

    assert value == {
        "model": {"sku": "Premium", "created": "2024-01-02T03:04:05"},
        "ports": [80, 443],
        "flag": True,
    }


def test_resource_dependencies_keep_order_without_repeats():
    resource = Resource(id="vm", kind="azurerm_linux_virtual_machine")
    for dependency in ("nic", "disk", "nic", ""):
        resource.add_dependency(dependency)

    assert resource.dependencies == ["nic", "disk"]
    assert resource.category == Category.UNKNOWN.value


def test_infrastructure_add_resource_reports_replacement():
    infra = Infrastructure(provider=CloudProvider.AZURE)

    assert infra.add_resource(Resource(id="a", kind="x")) is False
    assert infra.add_resource(Resource(id="a", kind="y")) is True
    assert infra.get_resource("a").kind == "y"
    assert infra.count_by_kind() == {"y": 1}


def test_parse_options_helpers_copy():
    options = ParseOptions()
    narrowed = options.with_filter_kinds("azurerm_redis_cache").with_regions("eastus").with_ignore_errors()

    assert options.filter_kinds == []
    assert narrowed.filter_kinds == ["azurerm_redis_cache"]
    assert narrowed.regions == ["eastus"]
    assert narrowed.ignore_errors is True
    assert narrowed.with_filter_categories(Category.CACHE).filter_categories == ["cache"]


def test_depth_allows():
    assert ParseOptions(max_depth=1).depth_allows(1)
    assert not ParseOptions(max_depth=1).depth_allows(2)
    assert ParseOptions(max_depth=0).depth_allows(50)
    assert not ParseOptions(follow_nested_templates=False).depth_allows(1)


def test_parse_result_absorb_and_finalize():
    first = ParseResult.empty(CloudProvider.AZURE)
    first.infrastructure.add_resource(Resource(id="a", kind="azurerm_lb", category=Category.LOAD_BALANCER))
    second = ParseResult.empty(CloudProvider.AZURE)
    second.infrastructure.add_resource(Resource(id="a", kind="azurerm_lb", category=Category.LOAD_BALANCER))
    second.infrastructure.add_resource(Resource(id="b", kind="azurerm_dns_zone", category=Category.DNS))
    second.record_error("bad.json", ValueError("boom"))

    replaced = first.absorb(second)
    first.finalize()

    assert replaced == ["a"]
    assert first.summary() == (2, 0, 1)
    assert first.degraded
    assert first.errors[0].error_type == "ValueError"
    assert first.stats.resources_by_category == {"load_balancer": 1, "dns": 1}
