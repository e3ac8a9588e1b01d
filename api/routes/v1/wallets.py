"""Wallet endpoints."""

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_actor, get_pagination_params, get_services
from api.schemas.wallets import (
    DepositRequest,
    ReconciliationResponse,
    TransactionResponse,
    WalletResponse,
)
from api.services import ServiceContainer
from core.exceptions import PermissionDenied
from core.permissions import Actor, Permission
from database.models.finance import OwnerType, Wallet

router = APIRouter()


async def _wallet_for(
    wallet_id: int, actor: Actor, services: ServiceContainer
) -> Wallet:
    wallet = await services.wallets.get_wallet(wallet_id)
    own = wallet.owner_type == OwnerType.USER and wallet.owner_id == actor.user_id
    if not own and not actor.can(Permission.WALLET_VIEW_ANY):
        raise PermissionDenied("Not your wallet")
    return wallet


@router.get("/me", response_model=WalletResponse)
async def get_my_wallet(
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """The current user's wallet, created empty on first access."""
    wallet = await services.wallets.get_or_create_wallet(actor.user_id, OwnerType.USER)
    return WalletResponse.model_validate(wallet)


@router.get("/{wallet_id}", response_model=WalletResponse)
async def get_wallet(
    wallet_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    wallet = await _wallet_for(wallet_id, actor, services)
    return WalletResponse.model_validate(wallet)


@router.get("/{wallet_id}/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    wallet_id: int,
    pagination: dict = Depends(get_pagination_params),
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Ledger entries of a wallet, oldest first."""
    await _wallet_for(wallet_id, actor, services)
    transactions = await services.wallets.list_transactions(
        wallet_id, limit=pagination["limit"], offset=pagination["offset"]
    )
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.post(
    "/{wallet_id}/deposits",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_deposit(
    wallet_id: int,
    data: DepositRequest,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Record a gateway deposit into a wallet (admin only)."""
    transaction = await services.wallets.deposit(
        wallet_id, data.amount, actor, data.gateway_transaction_id
    )
    return TransactionResponse.model_validate(transaction)


@router.get("/{wallet_id}/reconciliation", response_model=ReconciliationResponse)
async def reconcile_wallet(
    wallet_id: int,
    actor: Actor = Depends(get_current_actor),
    services: ServiceContainer = Depends(get_services),
):
    """Compare the wallet balance with its ledger."""
    await _wallet_for(wallet_id, actor, services)
    result = await services.wallets.reconcile(wallet_id)
    return ReconciliationResponse(
        wallet_id=result.wallet_id,
        balance=result.balance,
        ledger_total=result.ledger_total,
        is_consistent=result.is_consistent,
    )
