"""
Procurement router - assigns each order line to one supplier and groups the
result into per-supplier purchase tasks.

Scoring per line (candidates collapsed to one best offer per supplier):
- effective packs = max(requested packs, offer minimum order packs)
- estimated cost = unit cost * effective packs
- cost and lead time are inverse min-max normalized (lowest scores 1.0)
- match score is direct min-max normalized (highest scores 1.0)
- availability uses the fixed availability scale
- if every candidate has the same raw value, all of them score 1.0

Ties on final score go to the lexicographically smallest supplier id.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from app.models.routing import RoutingStrategy
from app.models.supplier import Availability
from app.services.offer_matcher import MatchedOffer, OrderLineSpec, availability_score

UNKNOWN_LEAD_TIME_DAYS = 999
SCORE_PRECISION = 6


@dataclass(frozen=True)
class BalancedWeights:
    cost: float = 0.5
    lead: float = 0.3
    availability: float = 0.2
    match: float = 0.1

    @classmethod
    def from_dict(cls, data: Optional[dict], defaults: Optional[dict] = None) -> "BalancedWeights":
        """Overlay data on defaults (the class defaults when none are given)."""
        merged = asdict(cls())
        merged.update({k: v for k, v in (defaults or {}).items() if v is not None})
        merged.update({k: v for k, v in (data or {}).items() if v is not None})
        return cls(
            cost=float(merged["cost"]),
            lead=float(merged["lead"]),
            availability=float(merged["availability"]),
            match=float(merged["match"]),
        )


@dataclass
class RoutingLineInput:
    line_id: str
    spec: OrderLineSpec
    qty_packs: int
    candidates: List[MatchedOffer] = field(default_factory=list)


@dataclass
class SupplierScoreBreakdown:
    supplier_id: str
    offer_id: str
    match_quality: str
    match_score: float
    availability: str
    availability_score: float
    lead_time_days: Optional[int]
    lead_score: float
    unit_cost_jpy: int
    min_order_packs: int
    effective_packs: int
    estimated_cost_jpy: int
    cost_score: float
    match_score_normalized: float
    final_score: float = 0.0


@dataclass
class RoutingLineDecision:
    line_id: str
    variant_id: str
    qty_packs: int
    chosen_supplier_id: Optional[str]
    chosen_offer_id: Optional[str]
    needs_manual_assignment: bool
    reason_text: str
    strategy: RoutingStrategy
    candidates: List[SupplierScoreBreakdown] = field(default_factory=list)
    weights: Optional[BalancedWeights] = None

    def __post_init__(self):
        if self.needs_manual_assignment != (self.chosen_supplier_id is None):
            raise ValueError(
                f"Line {self.line_id}: needs_manual_assignment must be set exactly when no supplier is chosen"
            )

    @property
    def chosen(self) -> Optional[SupplierScoreBreakdown]:
        return next((c for c in self.candidates if c.offer_id == self.chosen_offer_id), None)

    def score_json(self) -> dict:
        """Audit payload persisted with the decision."""
        return {
            "strategy": self.strategy.value,
            "weights": asdict(self.weights) if self.weights else None,
            "candidates": [asdict(c) for c in self.candidates],
        }


@dataclass
class TaskGroupLine:
    line_id: str
    variant_id: str
    qty_packs: int
    offer_id: str
    estimated_cost_jpy: int


@dataclass
class SupplierTaskGroup:
    supplier_id: str
    total_packs: int = 0
    estimated_cost_jpy: int = 0
    lead_time_days_estimate: Optional[int] = None
    lines: List[TaskGroupLine] = field(default_factory=list)


@dataclass
class ManualAssignmentLine:
    line_id: str
    variant_id: str
    qty_packs: int


@dataclass
class RoutingResult:
    decisions: List[RoutingLineDecision]
    by_supplier: List[SupplierTaskGroup]
    needs_assignment: List[ManualAssignmentLine]


def normalize_inverse(values: Sequence[float]) -> List[float]:
    """Lowest value scores 1.0, highest 0.0; all-equal scores 1.0."""
    arr = np.asarray(values, dtype=float)
    lo, hi = arr.min(), arr.max()
    if hi == lo:
        return [1.0] * len(arr)
    return (1.0 - (arr - lo) / (hi - lo)).tolist()


def normalize_direct(values: Sequence[float]) -> List[float]:
    """Highest value scores 1.0, lowest 0.0; all-equal scores 1.0."""
    arr = np.asarray(values, dtype=float)
    lo, hi = arr.min(), arr.max()
    if hi == lo:
        return [1.0] * len(arr)
    return ((arr - lo) / (hi - lo)).tolist()


def pick_offer_per_supplier(candidates: Sequence[MatchedOffer]) -> List[MatchedOffer]:
    """Keep each supplier's best offer by match score, then most recently updated."""
    by_supplier: "OrderedDict[str, MatchedOffer]" = OrderedDict()
    for candidate in candidates:
        supplier_id = candidate.offer.supplier_id
        previous = by_supplier.get(supplier_id)
        if previous is None:
            by_supplier[supplier_id] = candidate
        elif candidate.match_score > previous.match_score:
            by_supplier[supplier_id] = candidate
        elif (
            candidate.match_score == previous.match_score
            and candidate.offer.updated_at > previous.offer.updated_at
        ):
            by_supplier[supplier_id] = candidate
    return list(by_supplier.values())


def _final_score(
    strategy: RoutingStrategy,
    weights: BalancedWeights,
    cost_score: float,
    lead_score: float,
    avail_score: float,
    match_norm: float,
) -> float:
    if strategy is RoutingStrategy.CHEAPEST:
        return cost_score
    if strategy is RoutingStrategy.FASTEST:
        return lead_score
    if strategy is RoutingStrategy.AVAILABILITY_FIRST:
        return avail_score
    if strategy is RoutingStrategy.BALANCED:
        return (
            weights.cost * cost_score
            + weights.lead * lead_score
            + weights.availability * avail_score
            + weights.match * match_norm
        )
    raise ValueError(f"Unsupported routing strategy: {strategy!r}")


REASON_BY_STRATEGY = {
    RoutingStrategy.CHEAPEST: "lowest estimated cost",
    RoutingStrategy.FASTEST: "fastest lead time",
    RoutingStrategy.AVAILABILITY_FIRST: "best availability",
    RoutingStrategy.BALANCED: "best balanced score",
}


def score_line(
    line: RoutingLineInput,
    strategy: RoutingStrategy,
    weights: BalancedWeights,
) -> List[SupplierScoreBreakdown]:
    """Score one line's per-supplier candidates, best first."""
    candidates = pick_offer_per_supplier(line.candidates)
    if not candidates:
        return []

    effective_packs = [max(line.qty_packs, c.offer.min_order_packs or 1) for c in candidates]
    estimated_costs = [(c.offer.unit_cost_jpy or 0) * eff for c, eff in zip(candidates, effective_packs)]
    leads = [
        c.offer.lead_time_days if c.offer.lead_time_days is not None else UNKNOWN_LEAD_TIME_DAYS
        for c in candidates
    ]

    cost_scores = normalize_inverse(estimated_costs)
    lead_scores = normalize_inverse(leads)
    match_norms = normalize_direct([c.match_score for c in candidates])

    breakdown = []
    for i, c in enumerate(candidates):
        avail = availability_score(c.offer.availability)
        final = _final_score(strategy, weights, cost_scores[i], lead_scores[i], avail, match_norms[i])
        breakdown.append(
            SupplierScoreBreakdown(
                supplier_id=c.offer.supplier_id,
                offer_id=c.offer.id,
                match_quality=c.match_quality.value,
                match_score=c.match_score,
                availability=Availability(c.offer.availability).value,
                availability_score=avail,
                lead_time_days=c.offer.lead_time_days,
                lead_score=lead_scores[i],
                unit_cost_jpy=c.offer.unit_cost_jpy,
                min_order_packs=c.offer.min_order_packs,
                effective_packs=effective_packs[i],
                estimated_cost_jpy=estimated_costs[i],
                cost_score=cost_scores[i],
                match_score_normalized=match_norms[i],
                final_score=round(final, SCORE_PRECISION),
            )
        )

    breakdown.sort(key=lambda b: (-b.final_score, b.supplier_id))
    return breakdown


def route_procurement(
    lines: Sequence[RoutingLineInput],
    strategy: RoutingStrategy,
    weights: Optional[BalancedWeights] = None,
) -> RoutingResult:
    """
    Route every line to a supplier.

    Every input line yields exactly one decision. Lines without candidates are
    flagged for manual assignment and never appear in a supplier group.
    """
    strategy = RoutingStrategy(strategy)
    weights = weights or BalancedWeights()

    seen_line_ids = set()
    for line in lines:
        if line.qty_packs <= 0:
            raise ValueError(f"Line {line.line_id}: qty_packs must be positive, got {line.qty_packs}")
        if line.line_id in seen_line_ids:
            raise ValueError(f"Duplicate line id in routing pass: {line.line_id}")
        seen_line_ids.add(line.line_id)

    decisions: List[RoutingLineDecision] = []
    groups: Dict[str, SupplierTaskGroup] = {}
    lead_times: Dict[str, List[int]] = {}
    needs_assignment: List[ManualAssignmentLine] = []

    for line in lines:
        breakdown = score_line(line, strategy, weights)
        if not breakdown:
            decisions.append(
                RoutingLineDecision(
                    line_id=line.line_id,
                    variant_id=line.spec.variant_id,
                    qty_packs=line.qty_packs,
                    chosen_supplier_id=None,
                    chosen_offer_id=None,
                    needs_manual_assignment=True,
                    reason_text="No candidates. Needs manual assignment.",
                    strategy=strategy,
                    weights=weights,
                )
            )
            needs_assignment.append(ManualAssignmentLine(line.line_id, line.spec.variant_id, line.qty_packs))
            continue

        chosen = breakdown[0]
        decisions.append(
            RoutingLineDecision(
                line_id=line.line_id,
                variant_id=line.spec.variant_id,
                qty_packs=line.qty_packs,
                chosen_supplier_id=chosen.supplier_id,
                chosen_offer_id=chosen.offer_id,
                needs_manual_assignment=False,
                reason_text=f"Chosen: supplier {chosen.supplier_id} ({REASON_BY_STRATEGY[strategy]}).",
                strategy=strategy,
                candidates=breakdown,
                weights=weights if strategy is RoutingStrategy.BALANCED else None,
            )
        )

        group = groups.setdefault(chosen.supplier_id, SupplierTaskGroup(supplier_id=chosen.supplier_id))
        group.total_packs += line.qty_packs
        group.estimated_cost_jpy += chosen.estimated_cost_jpy
        if chosen.lead_time_days is not None:
            lead_times.setdefault(chosen.supplier_id, []).append(chosen.lead_time_days)
        group.lines.append(
            TaskGroupLine(
                line_id=line.line_id,
                variant_id=line.spec.variant_id,
                qty_packs=line.qty_packs,
                offer_id=chosen.offer_id,
                estimated_cost_jpy=chosen.estimated_cost_jpy,
            )
        )

    for supplier_id, group in groups.items():
        known = lead_times.get(supplier_id)
        group.lead_time_days_estimate = max(known) if known else None

    return RoutingResult(decisions=decisions, by_supplier=list(groups.values()), needs_assignment=needs_assignment)
