from fastapi import APIRouter

from app.core.errors import missing_parameters
from app.schemas.accounting import CostBasisRequest
from app.services.accounting_service import cost_basis_report

router = APIRouter()


@router.post("/cost-basis")
def get_cost_basis(body: CostBasisRequest):
    """Build the ledger for one asset and compute its FIFO cost basis"""
    if not body.symbol:
        raise missing_parameters("Missing symbol")
    return cost_basis_report(
        body.symbol,
        body.transactions,
        body.transfers,
        body.current_price,
        body.current_balance,
        from_ms=body.from_ms,
        to_ms=body.to_ms,
        deposit_basis_price=body.deposit_basis_price,
    )
