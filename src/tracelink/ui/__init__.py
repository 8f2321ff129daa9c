"""UI module for tracelink.

The CLI can be run directly:
    python -m tracelink.ui.cli parse 00-...-01

Note: We don't export CLI components from __init__.py to avoid
module loading issues when running as a script.
"""

__all__: list[str] = []
