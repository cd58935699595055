"""
Cloud Parsers Module

Extractors that turn Azure infrastructure descriptions into Infrastructure:
- ARMTemplateParser: ARM deployment template JSON
- BicepParser: Bicep files
- TerraformParser: Terraform configuration and state (TerraformHCLParser, TerraformStateParser)
- LiveAPIScanner: live Azure management API

ParserRegistry and FormatDetector pick the extractor for a path.
"""

from infra_discovery.cloud_parsers.api_scanner import LiveAPIScanner
from infra_discovery.cloud_parsers.arm import ARMTemplateParser
from infra_discovery.cloud_parsers.base import FileParser, InfraParser
from infra_discovery.cloud_parsers.bicep import BicepParser
from infra_discovery.cloud_parsers.detector import DetectionCandidate, FormatDetector
from infra_discovery.cloud_parsers.hcl import TerraformHCLParser
from infra_discovery.cloud_parsers.registry import ParserRegistry, build_default_registry
from infra_discovery.cloud_parsers.terraform import TerraformParser
from infra_discovery.cloud_parsers.tfstate import TerraformStateParser

__all__ = [
    "ARMTemplateParser",
    "BicepParser",
    "DetectionCandidate",
    "FileParser",
    "FormatDetector",
    "InfraParser",
    "LiveAPIScanner",
    "ParserRegistry",
    "TerraformHCLParser",
    "TerraformParser",
    "TerraformStateParser",
    "build_default_registry",
]
