"""TenantGate: authorization core for a multi-tenant graph control plane."""

__version__ = "0.1.0"
