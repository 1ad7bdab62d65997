from typing import Any, Dict, List, Optional

from .base import CamelModel


class CostBasisRequest(CamelModel):
    symbol: Optional[str] = None
    transactions: List[Dict[str, Any]] = []
    transfers: List[Dict[str, Any]] = []
    current_price: float = 0.0
    current_balance: float = 0.0
    from_ms: Optional[int] = None
    to_ms: Optional[int] = None
    deposit_basis_price: float = 0.0
