from providers.base import ProviderClient, ProviderError, ProviderNotConfiguredError
from providers.canvas import CanvasClient
from providers.blackboard import BlackboardClient
from providers.teams import TeamsClient

CLIENTS = {
    'canvas': CanvasClient,
    'blackboard': BlackboardClient,
    'teams': TeamsClient,
}


def create_client(integration: str, base_url=None, token=None) -> ProviderClient:
    """Build the provider client for an integration id"""
    try:
        client_class = CLIENTS[integration]
    except KeyError:
        raise ValueError(f"Unknown integration: {integration}")
    return client_class(base_url=base_url, token=token)
