"""Client endpoints."""

from fastapi import APIRouter, Depends, Query, status

from invoicing.api.dependencies import get_services
from invoicing.api.schemas import DeleteResponse
from invoicing.auth.service import AuthUser, get_current_user
from invoicing.domain.requests import ClientCreate, ClientUpdate
from invoicing.domain.schema import Client
from invoicing.shared.container import ServiceContainer

router = APIRouter(prefix="/api/clients", tags=["Clients"])


@router.get("", response_model=list[Client])
def list_clients(
    q: str | None = Query(None, description="Search name, email or company"),
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> list[Client]:
    return services.clients.list_clients(user.id, q)


@router.post("", response_model=Client, status_code=status.HTTP_201_CREATED)
def create_client(
    body: ClientCreate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Client:
    return services.clients.create(user.id, body)


@router.get("/{client_id}", response_model=Client)
def get_client(
    client_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Client:
    return services.clients.get(user.id, client_id)


@router.put("/{client_id}", response_model=Client)
def update_client(
    client_id: str,
    body: ClientUpdate,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Client:
    return services.clients.update(user.id, client_id, body)


@router.delete("/{client_id}", response_model=DeleteResponse)
def delete_client(
    client_id: str,
    user: AuthUser = Depends(get_current_user),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> DeleteResponse:
    services.clients.delete(user.id, client_id)
    return DeleteResponse(id=client_id)
