"""Flashduty collaborator clients."""

from integrations.fixture import FixtureClient
from integrations.flashduty import FlashdutyAPIError, FlashdutyClient

__all__ = ["FlashdutyClient", "FlashdutyAPIError", "FixtureClient"]
