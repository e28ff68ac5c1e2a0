from azure.identity.aio import DefaultAzureCredential

from app.helpers.cache import lru_acache
from app.helpers.http import azure_transport


@lru_acache()
async def credential() -> DefaultAzureCredential:
    """
    Azure credential for RBAC authenticated services, like Cosmos DB.

    Resolved from the environment, a managed identity or a developer login, in that order.
    """
    return DefaultAzureCredential(
        # Performance
        transport=await azure_transport(),
    )
