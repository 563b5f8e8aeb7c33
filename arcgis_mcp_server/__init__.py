"""MCP tools for querying and editing ArcGIS Online feature layers."""

__version__ = "0.1.0"
