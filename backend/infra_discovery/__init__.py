"""Azure infrastructure discovery: ARM, Bicep, Terraform and live API extractors."""

__version__ = "0.1.0"
