"""
Matching engine for bank transaction reconciliation.
Scores every open receivable against a transaction and ranks the survivors.
"""

from typing import Iterable, Optional
import logging

from ..config import ReconConfig
from ..models.ledger import Client, MatchSuggestion, PaymentStatus, Receivable, ReceivableKind
from ..models.transaction import BankTransaction
from .factors import ScoringFactor, build_factors

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "Unknown"


class MatchingEngine:
    """
    Pure scoring engine.

    Given a transaction and a ledger snapshot, produces a ranked list of
    match suggestions. Never touches storage and is deterministic for
    identical inputs.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the matching engine.

        Args:
            config: Application configuration (defaults when omitted)
        """
        self.config = config or ReconConfig()
        matching = self.config.matching
        self.inclusion_threshold = matching.inclusion_threshold
        self.max_suggestions = matching.max_suggestions
        self.factors: dict[ReceivableKind, list[ScoringFactor]] = {
            ReceivableKind.INVOICE: build_factors(matching.invoice),
            ReceivableKind.DELIVERY: build_factors(matching.delivery),
        }

    def score(
        self,
        txn: BankTransaction,
        receivable: Receivable,
        client: Optional[Client],
    ) -> tuple[float, list[str]]:
        """
        Compute the composite score of one candidate.

        Returns:
            Tuple of (score in [0, 1], reasons in factor order)
        """
        total = 0.0
        reasons: list[str] = []
        for factor in self.factors[receivable.kind]:
            contribution, reason = factor.evaluate(txn, receivable, client)
            if contribution > 0:
                total += contribution
                if reason:
                    reasons.append(reason)

        # Rounded to 4 places; 0.40 + 0.35 + 0.10 must compare equal to 0.85
        return min(1.0, max(0.0, round(total, 4))), reasons

    def find_matches(
        self,
        txn: BankTransaction,
        receivables: Iterable[Receivable],
        clients: Iterable[Client],
    ) -> list[MatchSuggestion]:
        """
        Rank candidate receivables for a bank transaction.

        Args:
            txn: Bank transaction to match
            receivables: Open invoices and delivery-derived receivables
            clients: Client directory used for name matching

        Returns:
            At most `max_suggestions` suggestions, highest score first.
            Candidates under the inclusion threshold are dropped.
        """
        clients_by_id = {c.id: c for c in clients}
        suggestions: list[MatchSuggestion] = []

        for receivable in receivables:
            if receivable.status != PaymentStatus.UNPAID:
                continue

            client = clients_by_id.get(receivable.client_id)
            score, reasons = self.score(txn, receivable, client)

            if score < self.inclusion_threshold:
                continue

            logger.debug(
                f"Candidate {receivable.kind.value} {receivable.id} for txn {txn.id}: "
                f"{score:.2f} ({', '.join(reasons)})"
            )
            suggestions.append(
                MatchSuggestion.for_receivable(
                    receivable,
                    client_name=client.name if client else UNKNOWN_CLIENT,
                    score=score,
                    reasons=reasons,
                )
            )

        # sorted() is stable: equal scores keep input order
        suggestions = sorted(suggestions, key=lambda s: s.score, reverse=True)
        return suggestions[: self.max_suggestions]
