"""
fnkit-gateway: API gateway and pipeline orchestrator for fnkit functions.

- Router/auth layer: `fnkit_gateway.api`
- Pipeline cache, store and execution engine: `fnkit_gateway.pipeline`
- Backend calls over the private network: `fnkit_gateway.backends`
- Entrypoint: `fnkit-gateway serve` (see `fnkit_gateway.cli`)
"""

__version__ = "0.1.0"
