"""Client records scoped to the owning user."""

import logging

from invoicing.billing.listing import filter_clients
from invoicing.database.base import Repository
from invoicing.domain.requests import ClientCreate, ClientUpdate
from invoicing.domain.schema import Client
from invoicing.plans.service import PlanService
from invoicing.shared.errors import ConflictError, LimitReachedError, NotFoundError

logger = logging.getLogger(__name__)

CLIENTS_TABLE = "clients"


class ClientService:
    def __init__(self, repository: Repository, plans: PlanService) -> None:
        self.repository = repository
        self.plans = plans

    def list_clients(self, user_id: str, query: str | None = None) -> list[Client]:
        rows = self.repository.select(CLIENTS_TABLE, user_id=user_id)
        return filter_clients((Client.model_validate(r) for r in rows), query)

    def get(self, user_id: str, client_id: str) -> Client:
        rows = self.repository.select(CLIENTS_TABLE, id=client_id, user_id=user_id)
        if not rows:
            raise NotFoundError("Client not found")
        return Client.model_validate(rows[0])

    def create(self, user_id: str, data: ClientCreate) -> Client:
        """Create a client.

        Raises:
            LimitReachedError: Plan client limit reached
            ConflictError: A client with this email already exists
        """
        check = self.plans.can_create_client(user_id)
        if not check.allowed:
            raise LimitReachedError(check.reason or "Client limit reached", "clients")

        if self.repository.select(CLIENTS_TABLE, user_id=user_id, email=str(data.email)):
            raise ConflictError(f"A client with email {data.email} already exists")

        client = Client(user_id=user_id, **data.model_dump())
        row = self.repository.insert(CLIENTS_TABLE, client.model_dump(mode="json"))
        logger.info(f"Created client {client.id} for user {user_id}")
        return Client.model_validate(row)

    def update(self, user_id: str, client_id: str, data: ClientUpdate) -> Client:
        """Apply the set fields of ``data``.

        Raises:
            NotFoundError: Client does not exist
            ConflictError: Another client already uses the new email
        """
        current = self.get(user_id, client_id)
        changes = data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        if not changes:
            return current

        email = changes.get("email")
        if email and email != current.email:
            taken = self.repository.select(CLIENTS_TABLE, user_id=user_id, email=email)
            if any(row["id"] != client_id for row in taken):
                raise ConflictError(f"A client with email {email} already exists")

        rows = self.repository.update_where(CLIENTS_TABLE, changes, id=client_id, user_id=user_id)
        return Client.model_validate(rows[0])

    def delete(self, user_id: str, client_id: str) -> None:
        """Delete a client that no invoice or estimate refers to.

        Raises:
            NotFoundError: Client does not exist
            ConflictError: Client still has invoices or estimates
        """
        self.get(user_id, client_id)
        if self.repository.count("invoices", client_id=client_id) or self.repository.count(
            "estimates", client_id=client_id
        ):
            raise ConflictError("Cannot delete a client that has invoices or estimates")
        self.repository.delete_where(CLIENTS_TABLE, id=client_id, user_id=user_id)
        logger.info(f"Deleted client {client_id}")
