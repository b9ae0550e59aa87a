from app.workers.tasks.ledger_reconciliation import run_balance_reconciliation

__all__ = [
    "run_balance_reconciliation",
]
