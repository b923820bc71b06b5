"""Loading of specification files linked from task lists."""

from snowyowl.spec_ingestion.spec_loader import LoadedSpecification, SpecificationLoader

__all__ = ["LoadedSpecification", "SpecificationLoader"]
