"""Persistence gateways shipped with the SDK."""

from intake_workflow.gateways.http import HttpPersistenceGateway

__all__ = ["HttpPersistenceGateway"]
