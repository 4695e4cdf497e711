"""Tool catalog: YAML definitions, loading and handlers."""

from .handlers import (
    ArgumentValidator,
    IntrospectionHandler,
    ScriptToolHandler,
    ToolValidationError,
    ValidationMode,
)
from .loader import CatalogError, CatalogLoader, ToolDefinition, default_catalog_dir

__all__ = [
    "ArgumentValidator",
    "CatalogError",
    "CatalogLoader",
    "IntrospectionHandler",
    "ScriptToolHandler",
    "ToolDefinition",
    "ToolValidationError",
    "ValidationMode",
    "default_catalog_dir",
]
