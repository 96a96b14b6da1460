from __future__ import annotations

from orgaccess.models.organization import Organization
from orgaccess.repos import keys
from orgaccess.repos.state_store import Transaction


class OrgRepo:
    """Organization records and the user→organization mapping, within one transaction."""

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn

    async def get(self, org_id: str) -> Organization | None:
        data = await self._txn.get(keys.organization(org_id))
        return None if data is None else Organization.from_record(data)

    def put(self, org: Organization) -> None:
        self._txn.set(keys.organization(org.id), org.to_record())

    async def organization_id_for_user(self, user_id: str) -> str | None:
        return await self._txn.get(keys.user_organization(user_id))

    def link_user(self, user_id: str, org_id: str) -> None:
        self._txn.set(keys.user_organization(user_id), org_id)

    def unlink_user(self, user_id: str) -> None:
        self._txn.delete(keys.user_organization(user_id))
