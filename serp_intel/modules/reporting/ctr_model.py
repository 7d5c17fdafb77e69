"""Click-through-rate model by organic rank."""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

# Share of searchers clicking each page-one position.
DEFAULT_CTR_BY_RANK: dict[int, float] = {
    1: 0.28,
    2: 0.15,
    3: 0.10,
    4: 0.07,
    5: 0.05,
    6: 0.04,
    7: 0.03,
    8: 0.025,
    9: 0.020,
    10: 0.018,
}


@dataclass(frozen=True)
class CTRModel:
    """Rank -> CTR lookup with flat bands below the table.

    Ranks covered by ``by_rank`` use the table, ranks up to
    ``page_two_max_rank`` use ``page_two_rate``, ranks up to
    ``deep_max_rank`` use ``deep_rate`` and everything else, including an
    absent rank, gets ``floor_rate``.

    The table must start at rank 1, be contiguous and, together with the
    bands, be non-increasing in rank; construction fails otherwise.
    """
    by_rank: Mapping[int, float] = field(default_factory=lambda: dict(DEFAULT_CTR_BY_RANK))
    page_two_rate: float = 0.010
    page_two_max_rank: int = 20
    deep_rate: float = 0.004
    deep_max_rank: int = 50
    floor_rate: float = 0.001

    def __post_init__(self) -> None:
        ranks = sorted(self.by_rank)
        if ranks != list(range(1, len(ranks) + 1)):
            raise ValueError(f"CTR table must cover ranks 1..N contiguously, got {ranks}")
        if not len(ranks) <= self.page_two_max_rank <= self.deep_max_rank:
            raise ValueError("CTR bands must satisfy table size <= page_two_max_rank <= deep_max_rank")

        rates = [self.by_rank[r] for r in ranks]
        rates += [self.page_two_rate, self.deep_rate, self.floor_rate]
        if any(rate < 0 or rate > 1 for rate in rates):
            raise ValueError("CTR values must be within 0-1")
        for higher, lower in zip(rates, rates[1:]):
            if lower > higher:
                raise ValueError("CTR values must be non-increasing in rank")

    @property
    def table_depth(self) -> int:
        return len(self.by_rank)

    def ctr_for_rank(self, rank: Optional[int]) -> float:
        if rank is None or rank <= 0:
            return self.floor_rate
        if rank <= self.table_depth:
            return self.by_rank[rank]
        if rank <= self.page_two_max_rank:
            return self.page_two_rate
        if rank <= self.deep_max_rank:
            return self.deep_rate
        return self.floor_rate

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "CTRModel":
        """Build from a settings mapping; missing keys keep their defaults."""
        data = data or {}
        defaults = cls()
        table = data.get("ctr_by_rank")
        return cls(
            by_rank=(
                {int(k): float(v) for k, v in table.items()}
                if table else dict(DEFAULT_CTR_BY_RANK)
            ),
            page_two_rate=float(data.get("ctr_page_two", defaults.page_two_rate)),
            page_two_max_rank=int(data.get("ctr_page_two_max_rank", defaults.page_two_max_rank)),
            deep_rate=float(data.get("ctr_deep", defaults.deep_rate)),
            deep_max_rank=int(data.get("ctr_deep_max_rank", defaults.deep_max_rank)),
            floor_rate=float(data.get("ctr_floor", defaults.floor_rate)),
        )


DEFAULT_CTR_MODEL = CTRModel()


def ctr_for_rank(rank: Optional[int], model: CTRModel = DEFAULT_CTR_MODEL) -> float:
    """Modelled CTR for a rank; absent or non-positive ranks get the floor rate."""
    return model.ctr_for_rank(rank)
