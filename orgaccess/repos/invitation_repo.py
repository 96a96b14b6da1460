from __future__ import annotations

from orgaccess.models.invitation import PendingInvitation
from orgaccess.repos import keys
from orgaccess.repos.state_store import Transaction


class InvitationRepo:
    """Invitation records, the per-organization index and the public token index."""

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn

    async def get(self, org_id: str, invitation_id: str) -> PendingInvitation | None:
        data = await self._txn.get(keys.invitation(org_id, invitation_id))
        return None if data is None else PendingInvitation.from_record(data)

    async def get_by_token(self, token: str) -> PendingInvitation | None:
        ref = await self._txn.get(keys.invitation_token(token))
        if ref is None:
            return None
        invitation = await self.get(ref["organization_id"], ref["invitation_id"])
        if invitation is None or invitation.token != token:
            return None
        return invitation

    def put(self, invitation: PendingInvitation) -> None:
        self._txn.set(
            keys.invitation(invitation.organization_id, invitation.id),
            invitation.to_record(),
        )

    async def ids(self, org_id: str) -> list[str]:
        return list(await self._txn.get(keys.invitation_index(org_id)) or [])

    async def add(self, invitation: PendingInvitation) -> None:
        ids = await self.ids(invitation.organization_id)
        self.put(invitation)
        self._txn.set(keys.invitation_index(invitation.organization_id), [*ids, invitation.id])
        self._txn.set(
            keys.invitation_token(invitation.token),
            {"organization_id": invitation.organization_id, "invitation_id": invitation.id},
        )

    async def retire(self, invitation: PendingInvitation) -> None:
        """Store an accepted or canceled invitation and drop it from the organization index.

        The record and its token entry stay, so the link still resolves to
        an invalid invitation and the id still answers resend and cancel.
        """
        ids = await self.ids(invitation.organization_id)
        self.put(invitation)
        self._txn.set(
            keys.invitation_index(invitation.organization_id),
            [i for i in ids if i != invitation.id],
        )

    async def list_by_org(self, org_id: str) -> list[PendingInvitation]:
        invitations = []
        for invitation_id in await self.ids(org_id):
            invitation = await self.get(org_id, invitation_id)
            if invitation is not None:
                invitations.append(invitation)
        return invitations
