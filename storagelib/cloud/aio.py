"""
Suspend-based adapters.

`ThreadedResourceClient` turns any blocking ResourceClient into an
AsyncResourceClient by running each call on a worker thread with
asyncio.to_thread; `ThreadedCredentialProvider` does the same for token
acquisition. The orchestrator's async driver awaits them exactly like a native
async binding.
"""

import asyncio
from typing import AsyncIterator, Callable, Optional

from storagelib.cloud.models import (
    CancellationToken,
    NameAvailability,
    ResourceGroupDescriptor,
    StorageAccountDescriptor,
    StorageAccountKeySet,
    Token,
)
from storagelib.cloud.ports import CredentialProvider, ResourceClient

_DONE = object()


class ThreadedCredentialProvider:
    def __init__(self, provider: CredentialProvider):
        self.provider = provider

    async def acquire(self, *, cancel: Optional[CancellationToken] = None) -> Token:
        return await asyncio.to_thread(self.provider.acquire, cancel=cancel)


class ThreadedResourceClient:
    """AsyncResourceClient over a blocking ResourceClient."""

    def __init__(self, client: ResourceClient):
        self.client = client

    @staticmethod
    def factory(sync_factory: Callable[[Token], ResourceClient]) -> Callable[[Token], "ThreadedResourceClient"]:
        def _build(token: Token) -> "ThreadedResourceClient":
            return ThreadedResourceClient(sync_factory(token))
        return _build

    async def register_provider(self, namespace: str, *, cancel: Optional[CancellationToken] = None) -> str:
        return await asyncio.to_thread(self.client.register_provider, namespace, cancel=cancel)

    async def upsert_group(self, group: ResourceGroupDescriptor, *,
                           cancel: Optional[CancellationToken] = None) -> ResourceGroupDescriptor:
        return await asyncio.to_thread(self.client.upsert_group, group, cancel=cancel)

    async def check_name_availability(self, name: str, *,
                                      cancel: Optional[CancellationToken] = None) -> NameAvailability:
        return await asyncio.to_thread(self.client.check_name_availability, name, cancel=cancel)

    async def upsert_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                             cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        return await asyncio.to_thread(self.client.upsert_account, resource_group, account, cancel=cancel)

    async def get_account(self, resource_group: str, name: str, *,
                          cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        return await asyncio.to_thread(self.client.get_account, resource_group, name, cancel=cancel)

    async def list_accounts(self, resource_group: Optional[str] = None, *,
                            cancel: Optional[CancellationToken] = None) -> AsyncIterator[StorageAccountDescriptor]:
        """Pull one item at a time off the blocking pager so page fetches never block the loop."""
        iterator = iter(self.client.list_accounts(resource_group, cancel=cancel))
        while True:
            item = await asyncio.to_thread(next, iterator, _DONE)
            if item is _DONE:
                return
            yield item

    async def list_keys(self, resource_group: str, name: str, *,
                        cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        return await asyncio.to_thread(self.client.list_keys, resource_group, name, cancel=cancel)

    async def regenerate_key(self, resource_group: str, name: str, key_name: str, *,
                             cancel: Optional[CancellationToken] = None) -> StorageAccountKeySet:
        return await asyncio.to_thread(self.client.regenerate_key, resource_group, name, key_name, cancel=cancel)

    async def update_account(self, resource_group: str, account: StorageAccountDescriptor, *,
                             cancel: Optional[CancellationToken] = None) -> StorageAccountDescriptor:
        return await asyncio.to_thread(self.client.update_account, resource_group, account, cancel=cancel)

    async def delete_account(self, resource_group: str, name: str, *,
                             cancel: Optional[CancellationToken] = None) -> None:
        await asyncio.to_thread(self.client.delete_account, resource_group, name, cancel=cancel)

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if callable(close):
            await asyncio.to_thread(close)
