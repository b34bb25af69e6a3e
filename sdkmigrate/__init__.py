"""Convert legacy MSBuild project files to SDK-style projects."""

__version__ = "0.1.0"
