"""
Domain package for the transaction producer.

Exports the generated record type and the reference table models. Keep this
package focused on data definitions.
"""

from txn_producer.domain.models import (
    INTEGER_FIELDS,
    TRANSACTION_FIELDS,
    Agent,
    Currency,
    CurrencyRate,
    GameCategory,
    ReferenceData,
    Transaction,
)

__all__ = [
    "INTEGER_FIELDS",
    "TRANSACTION_FIELDS",
    "Agent",
    "Currency",
    "CurrencyRate",
    "GameCategory",
    "ReferenceData",
    "Transaction",
]
