from __future__ import annotations

from orgaccess.models.organization import OrganizationMember
from orgaccess.repos import keys
from orgaccess.repos.state_store import Transaction


class OrgMembershipRepo:
    """Membership records plus the per-organization member index.

    The index (``organization:{id}:members``) is what makes listing
    possible without a key scan; every add/remove keeps it in step with
    the member records inside the same transaction.
    """

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn

    async def get(self, org_id: str, user_id: str) -> OrganizationMember | None:
        data = await self._txn.get(keys.member(org_id, user_id))
        return None if data is None else OrganizationMember.from_record(data)

    def put(self, member: OrganizationMember) -> None:
        self._txn.set(keys.member(member.organization_id, member.user_id), member.to_record())

    async def user_ids(self, org_id: str) -> list[str]:
        return list(await self._txn.get(keys.member_index(org_id)) or [])

    async def add(self, member: OrganizationMember) -> None:
        ids = await self.user_ids(member.organization_id)
        if member.user_id in ids:
            raise ValueError("membership already exists")
        self.put(member)
        self._txn.set(keys.member_index(member.organization_id), [*ids, member.user_id])

    async def remove(self, org_id: str, user_id: str) -> None:
        ids = await self.user_ids(org_id)
        self._txn.delete(keys.member(org_id, user_id))
        self._txn.set(keys.member_index(org_id), [i for i in ids if i != user_id])

    async def list_by_org(self, org_id: str) -> list[OrganizationMember]:
        members = []
        for user_id in await self.user_ids(org_id):
            member = await self.get(org_id, user_id)
            if member is not None:
                members.append(member)
        return members
