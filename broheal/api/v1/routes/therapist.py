from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from broheal.api.deps import require_roles
from broheal.db.session import get_db
from broheal.models.user import User
from broheal.schemas.wallet import TransactionOut, WalletOut, WithdrawRequest
from broheal.services.errors import InsufficientBalance, WalletNotFound
from broheal.services.wallet_service import get_balance, get_transactions, process_withdrawal

router = APIRouter(tags=["therapist"])


@router.get("/therapist/wallet")
def wallet(db: Session = Depends(get_db), me: User = Depends(require_roles("therapist"))):
    w = get_balance(db, me.id)
    return {"success": True, "wallet": WalletOut.model_validate(w).model_dump(mode="json")}


@router.get("/therapist/transactions")
def transactions(limit: int = 50, db: Session = Depends(get_db), me: User = Depends(require_roles("therapist"))):
    items = get_transactions(db, me.id, limit=limit)
    return {
        "success": True,
        "count": len(items),
        "transactions": [TransactionOut.model_validate(t).model_dump(mode="json") for t in items],
    }


@router.post("/therapist/withdraw")
def withdraw(body: WithdrawRequest, db: Session = Depends(get_db), me: User = Depends(require_roles("therapist"))):
    try:
        result = process_withdrawal(db, me.id, body.amount, body.bankDetails.model_dump())
    except (InsufficientBalance, WalletNotFound, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "success": True,
        "message": "Withdrawal request processed",
        "wallet": WalletOut.model_validate(result.wallet).model_dump(mode="json"),
        "transaction": TransactionOut.model_validate(result.transaction).model_dump(mode="json"),
    }
