"""
Scoring factors for transaction-to-receivable matching.
Each factor contributes an independent, weighted share of the composite score.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from ..config import KindScoring
from ..models.ledger import Client, Receivable, ReceivableKind
from ..models.transaction import BankTransaction

# A factor result: (contribution, reason or None when the factor is silent)
FactorResult = tuple[float, Optional[str]]

_KIND_LABELS = {
    ReceivableKind.INVOICE: "invoice",
    ReceivableKind.DELIVERY: "delivery note",
}


class ScoringFactor(ABC):
    """Abstract base class for scoring factors."""

    name: str = "factor"

    def __init__(self, weight: float):
        self.weight = weight

    @abstractmethod
    def evaluate(
        self,
        txn: BankTransaction,
        receivable: Receivable,
        client: Optional[Client],
    ) -> FactorResult:
        """
        Score one candidate receivable against a bank transaction.

        Args:
            txn: Bank transaction being reconciled
            receivable: Candidate receivable
            client: Client owning the receivable, if known

        Returns:
            Tuple of (contribution in [0, weight], reason or None)
        """
        pass


class AmountFactor(ScoringFactor):
    """
    Relative amount difference, banded.

    Exact amounts earn the full weight, close and similar amounts earn a
    fraction of it, anything further apart earns nothing.
    """

    name = "amount"

    def __init__(
        self,
        weight: float,
        close_percent: float = 1.0,
        close_multiplier: float = 0.875,
        similar_percent: float = 5.0,
        similar_multiplier: float = 0.5,
    ):
        super().__init__(weight)
        self.close_ratio = Decimal(str(close_percent)) / 100
        self.close_percent = close_percent
        self.close_multiplier = close_multiplier
        self.similar_ratio = Decimal(str(similar_percent)) / 100
        self.similar_percent = similar_percent
        self.similar_multiplier = similar_multiplier

    def evaluate(
        self,
        txn: BankTransaction,
        receivable: Receivable,
        client: Optional[Client],
    ) -> FactorResult:
        # Zero (or negative) receivable amounts cannot be compared relatively
        if receivable.amount <= 0:
            return 0.0, None

        suffix = " (delivery estimate)" if receivable.is_estimate else ""
        ratio = abs(txn.amount - receivable.amount) / receivable.amount

        if ratio == 0:
            return self.weight, f"Exact amount{suffix}"
        if ratio <= self.close_ratio:
            return (
                self.weight * self.close_multiplier,
                f"Close amount (±{self.close_percent:g}%){suffix}",
            )
        if ratio <= self.similar_ratio:
            return (
                self.weight * self.similar_multiplier,
                f"Similar amount (±{self.similar_percent:g}%){suffix}",
            )
        return 0.0, None


class ClientReferenceFactor(ScoringFactor):
    """Share of the client's name tokens found in the transaction label."""

    name = "client"

    def __init__(self, weight: float, min_token_length: int = 3):
        super().__init__(weight)
        self.min_token_length = min_token_length

    def evaluate(
        self,
        txn: BankTransaction,
        receivable: Receivable,
        client: Optional[Client],
    ) -> FactorResult:
        if client is None or not client.name:
            return 0.0, None

        tokens = client.name.lower().split()
        if not tokens:
            return 0.0, None

        label = txn.label.lower()
        matched = [
            token
            for token in tokens
            if len(token) >= self.min_token_length and token in label
        ]
        if not matched:
            return 0.0, None

        # Denominator counts every name token, short ones included
        ratio = len(matched) / len(tokens)
        return self.weight * ratio, f"Client reference: {', '.join(matched)}"


class ReceivableIdFactor(ScoringFactor):
    """Receivable number quoted in the transaction label."""

    name = "reference"

    def evaluate(
        self,
        txn: BankTransaction,
        receivable: Receivable,
        client: Optional[Client],
    ) -> FactorResult:
        if not receivable.id:
            return 0.0, None
        if receivable.id.lower() in txn.label.lower():
            label = _KIND_LABELS[receivable.kind].capitalize()
            return self.weight, f"{label} number found"
        return 0.0, None


class DateProximityFactor(ScoringFactor):
    """Days between the transaction and the receivable's reference date."""

    name = "date"

    def __init__(
        self,
        weight: float,
        full_tolerance_days: int,
        half_tolerance_days: Optional[int] = None,
    ):
        super().__init__(weight)
        self.full_tolerance_days = full_tolerance_days
        self.half_tolerance_days = half_tolerance_days

    def evaluate(
        self,
        txn: BankTransaction,
        receivable: Receivable,
        client: Optional[Client],
    ) -> FactorResult:
        days = abs((txn.date - receivable.date).days)

        if days <= self.full_tolerance_days:
            return self.weight, f"Close date (≤{self.full_tolerance_days}d)"
        if self.half_tolerance_days is not None and days <= self.half_tolerance_days:
            return self.weight / 2, f"Close date (≤{self.half_tolerance_days}d)"
        return 0.0, None


def build_factors(scoring: KindScoring) -> list[ScoringFactor]:
    """
    Build the ordered factor list for one receivable pool.

    Args:
        scoring: Weights and tolerances for the pool

    Returns:
        Factors in reason order: amount, client, reference, date
    """
    return [
        AmountFactor(
            weight=scoring.amount_weight,
            close_percent=scoring.close_amount_percent,
            close_multiplier=scoring.close_amount_multiplier,
            similar_percent=scoring.similar_amount_percent,
            similar_multiplier=scoring.similar_amount_multiplier,
        ),
        ClientReferenceFactor(
            weight=scoring.client_weight,
            min_token_length=scoring.min_token_length,
        ),
        ReceivableIdFactor(weight=scoring.reference_weight),
        DateProximityFactor(
            weight=scoring.date_weight,
            full_tolerance_days=scoring.date_full_tolerance_days,
            half_tolerance_days=scoring.date_half_tolerance_days,
        ),
    ]
