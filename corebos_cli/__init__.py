"""
coreBOS CLI - Three-layer client for the coreBOS web service.

Layers:
- core: Wire protocol, session state and typed results
- sdk: High-level CoreBOSClient with login and record operations
- cli: Opinionated command-line interface
"""

from corebos_cli.sdk import CoreBOSClient

__version__ = "0.1.0"
__all__ = ["CoreBOSClient"]
