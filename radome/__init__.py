"""
Radome - Agent Workload Control Plane

Provisions short-lived agent containers in a Kubernetes cluster and exposes
each one through a dynamically resolved reverse proxy.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- config: Process configuration
- kube: Kubernetes client and tunnel credentials
- directory: In-memory instance directory and status derivation
- catalog: Allowed image catalog
- routing: Identifier resolution, backend targets, response rewriting
- proxy: Request dispatching (HTTP and WebSocket)
- api: Control API models
- middleware: Control API authentication
"""

__version__ = "1.0.0"
