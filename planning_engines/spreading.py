"""
Module: planning_engines.spreading
Responsibility:
    Apportion one parent amount across an ordered list of children
    (proportional to current values, by explicit weights, or evenly) with
    deterministic 2-decimal rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import planning_kernel/domain/values and logging.

Invariants enforced:
    - Conservation: sum(allocations) == amount exactly.  Every child but the
      last is rounded with ROUND_HALF_UP to 0.01; the last child receives
      ``amount - running_sum`` unrounded.
    - Child order is the caller's order; the remainder always lands on the
      last element.
    - Degenerate shares (all null or zero, or zero total weight) fall back
      to the even split with the same remainder rule.

Failure modes:
    - InvalidSpreadRequestError on an unknown mode or a non-finite amount.

Usage:
    from planning_engines.spreading import apportion
    from planning_kernel.domain.values import SpreadMode

    result = apportion(
        amount=Decimal("800"),
        shares=[Decimal("100"), Decimal("300")],
        mode=SpreadMode.PROPORTIONAL,
    )
    result.allocations  # (Decimal("200.00"), Decimal("600.00"))
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from planning_engines.tracer import traced_engine
from planning_kernel.domain.values import SpreadMode
from planning_kernel.exceptions import InvalidSpreadRequestError
from planning_kernel.logging_config import get_logger

logger = get_logger("engines.spreading")

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round2(value: Decimal) -> Decimal:
    """Round half away from zero to two decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SpreadResult:
    """
    Outcome of one apportionment.

    Contract:
        ``allocations[i]`` belongs to the i-th share passed in.
    Guarantees:
        - ``sum(allocations) == amount``.
        - ``applied_mode`` is EVEN whenever a fallback was taken.
    """

    amount: Decimal
    requested_mode: SpreadMode
    applied_mode: SpreadMode
    allocations: tuple[Decimal, ...]

    @property
    def used_fallback(self) -> bool:
        return self.applied_mode != self.requested_mode


@traced_engine("spreading", "1.0", fingerprint_fields=("amount", "shares", "mode"))
def apportion(
    *,
    amount: Decimal,
    shares: Sequence[Decimal | None],
    mode: SpreadMode = SpreadMode.PROPORTIONAL,
) -> SpreadResult:
    """
    Split ``amount`` across ``len(shares)`` children.

    ``shares`` holds the children's current values in PROPORTIONAL mode and
    their weights in WEIGHTED mode; it is ignored (except for its length)
    in EVEN mode.  None counts as 0.  In WEIGHTED mode negative weights
    also count as 0.
    """
    try:
        mode = SpreadMode(mode)
    except ValueError:
        raise InvalidSpreadRequestError(f"Unknown spread mode: {mode!r}") from None
    if not isinstance(amount, Decimal) or not amount.is_finite():
        raise InvalidSpreadRequestError(f"Spread amount must be a finite Decimal: {amount!r}")

    if not shares:
        return SpreadResult(amount, mode, mode, ())

    match mode:
        case SpreadMode.PROPORTIONAL:
            basis = [s if s is not None else ZERO for s in shares]
        case SpreadMode.WEIGHTED:
            basis = [s if s is not None and s > ZERO else ZERO for s in shares]
        case _:
            basis = None

    total = sum(basis, ZERO) if basis is not None else ZERO
    if basis is None or total == ZERO:
        if mode != SpreadMode.EVEN:
            logger.info("spread_fallback_even", extra={
                "requested_mode": mode.value,
                "child_count": len(shares),
            })
        count = Decimal(len(shares))
        allocations = _allocate(amount, len(shares), lambda i: amount / count)
        return SpreadResult(amount, mode, SpreadMode.EVEN, allocations)

    allocations = _allocate(amount, len(shares), lambda i: amount * basis[i] / total)
    return SpreadResult(amount, mode, mode, allocations)


def _allocate(
    amount: Decimal,
    count: int,
    exact_share: Callable[[int], Decimal],
) -> tuple[Decimal, ...]:
    """Common remainder-to-last loop for every mode."""
    allocations: list[Decimal] = []
    allocated_so_far = ZERO
    last = count - 1

    for i in range(count):
        if i == last:
            allocations.append(amount - allocated_so_far)
        else:
            share = round2(exact_share(i))
            allocated_so_far += share
            allocations.append(share)

    assert sum(allocations, ZERO) == amount, (
        f"Spread conservation violated: {sum(allocations, ZERO)} != {amount}"
    )
    return tuple(allocations)
