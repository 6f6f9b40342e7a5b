"""
Client utilities.

Handles:
- Configuration from environment and command line
- Logging
"""
