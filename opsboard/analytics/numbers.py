"""
Exact decimal helpers.

Every ratio in the engine goes through ``safe_div`` so that a zero or
non-finite denominator yields ``None`` instead of an exception or a
non-finite value.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union

Number = Union[Decimal, int, float]
K = TypeVar("K", bound=Hashable)

ZERO = Decimal("0")
MONEY_QUANTUM = Decimal("0.0001")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce a driver value (Decimal, int, float, str or None) into a Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def is_finite(value: Optional[Number]) -> bool:
    if value is None:
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    try:
        return Decimal(repr(value) if isinstance(value, float) else value).is_finite()
    except InvalidOperation:
        return False


def safe_div(numerator: Optional[Number], denominator: Optional[Number]) -> Optional[Decimal]:
    """numerator / denominator, or None when either side is unusable or the denominator is 0."""
    if not is_finite(numerator) or not is_finite(denominator):
        return None
    den = to_decimal(denominator)
    if den == 0:
        return None
    return to_decimal(numerator) / den


def safe_delta(current: Optional[Number], previous: Optional[Number]) -> Optional[Decimal]:
    if not is_finite(current) or not is_finite(previous):
        return None
    return to_decimal(current) - to_decimal(previous)


def safe_delta_pct(delta: Optional[Number], previous: Optional[Number]) -> Optional[Decimal]:
    """delta / previous with the same null rules as ``safe_div``."""
    return safe_div(delta, previous)


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def mean(values: Iterable[Optional[Number]]) -> Optional[Decimal]:
    """Unweighted mean of the finite values, or None when there are none."""
    finite = [to_decimal(v) for v in values if is_finite(v)]
    if not finite:
        return None
    return sum(finite, ZERO) / len(finite)


def allocate_proportionally(
    total: Number,
    weights: Mapping[K, Number],
    quantum: Decimal = MONEY_QUANTUM,
) -> Dict[K, Decimal]:
    """
    Split ``total`` across keys in proportion to ``weights``.

    Two passes: shares are floored to ``quantum`` first, then the leftover
    quanta go to the keys with the largest remainders (ties by insertion
    order). The parts always sum exactly to ``total`` quantized to
    ``quantum``. Zero or negative total weight allocates 0 to every key.
    """
    amount = to_decimal(total).quantize(quantum, rounding=ROUND_HALF_UP)
    keys = list(weights.keys())
    weight_total = sum((to_decimal(w) for w in weights.values()), ZERO)
    if not keys or weight_total <= 0:
        return {key: ZERO.quantize(quantum) for key in keys}

    floors: Dict[K, Decimal] = {}
    remainders: List[Tuple[Decimal, int, K]] = []
    for index, key in enumerate(keys):
        exact = amount * to_decimal(weights[key]) / weight_total
        floored = (exact / quantum).to_integral_value(rounding=ROUND_FLOOR) * quantum
        floors[key] = floored
        remainders.append((exact - floored, index, key))

    leftover = int(((amount - sum(floors.values(), ZERO)) / quantum).to_integral_value())
    remainders.sort(key=lambda item: (-item[0], item[1]))
    for _, _, key in remainders[:leftover]:
        floors[key] += quantum
    return floors


def fmt_money(value: Optional[Number]) -> str:
    if not is_finite(value):
        return "n/a"
    return f"{to_decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def fmt_pct(ratio: Optional[Number], scale: int = 100) -> str:
    """Format a 0..1 ratio (or an already-scaled value with scale=1) as a percentage."""
    if not is_finite(ratio):
        return "n/a"
    pct = to_decimal(ratio) * scale
    return f"{pct.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}%"
