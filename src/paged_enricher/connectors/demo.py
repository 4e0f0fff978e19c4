"""Synthetic company / orders / bulk-email collaborators for demos and benchmarks.

Every delay is expressed in milliseconds and multiplied by ``time_scale``,
so tests can run the same shapes of workload in a fraction of the time.
"""

import asyncio
import random
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from ..logging_config import get_logger
from ..utils.typing import Batch, Record

logger = get_logger(__name__)

_NAME_PARTS = (
    ["Acme", "Globex", "Initech", "Umbrella", "Stark", "Wayne", "Hooli", "Vandelay", "Soylent", "Tyrell"],
    ["Industries", "Holdings", "Labs", "Logistics", "Systems", "Trading", "Group", "Partners"],
)
_CITIES = [("London", "GB"), ("Leeds", "GB"), ("Paris", "FR"), ("Lyon", "FR"), ("Berlin", "DE"),
           ("Hamburg", "DE"), ("Madrid", "ES"), ("Milan", "IT"), ("Dublin", "IE"), ("Oslo", "NO")]
_PRODUCTS = ["Chair", "Table", "Keyboard", "Mouse", "Gloves", "Shoes", "Towels", "Sausages", "Cheese", "Bike"]


class _Latency:
    def __init__(self, rng: random.Random, randomness: bool, time_scale: float):
        self.rng = rng
        self.randomness = randomness
        self.time_scale = time_scale

    def pick(self, low: int, high: int) -> int:
        if self.randomness:
            return self.rng.randint(low, high)
        return (low + high) // 2

    async def sleep(self, ms: float) -> None:
        if ms > 0 and self.time_scale > 0:
            await asyncio.sleep(ms * self.time_scale / 1000)


class DemoCompanySource:
    """Paginated company listing; returns nothing past ``total``."""

    def __init__(
        self,
        total: int = 100,
        per_record_ms: Tuple[int, int] = (4, 8),
        randomness: bool = True,
        time_scale: float = 1.0,
        seed: Optional[int] = None,
    ):
        self.total = total
        self.per_record_ms = per_record_ms
        self.rng = random.Random(seed)
        self.latency = _Latency(self.rng, randomness, time_scale)
        self.offsets: List[int] = []

    async def fetch(self, limit: int, offset: int) -> List[Record]:
        self.offsets.append(offset)
        await self.latency.sleep(self.latency.pick(*self.per_record_ms) * limit)
        count = max(0, min(self.total - offset, limit))
        return [self._company(offset + i) for i in range(count)]

    def _company(self, company_id: int) -> Record:
        city, country = self.rng.choice(_CITIES)
        name = f"{self.rng.choice(_NAME_PARTS[0])} {self.rng.choice(_NAME_PARTS[1])}"
        return Record(id=company_id, data={"name": name, "city": city, "country_code": country})


class DemoOrderEnricher:
    """
    Looks up a company's recent orders.

    Every ``anomaly_frequency``-th company is ``anomaly_multiplier`` times
    slower, which is what makes head-of-line blocking visible in benchmarks.
    """

    def __init__(
        self,
        per_order_ms: Tuple[int, int] = (3, 7),
        orders_per_company: Tuple[int, int] = (4, 8),
        anomaly_frequency: int = 10,
        anomaly_multiplier: int = 10,
        use_anomalies: bool = True,
        randomness: bool = True,
        time_scale: float = 1.0,
        seed: Optional[int] = None,
    ):
        self.per_order_ms = per_order_ms
        self.orders_per_company = orders_per_company
        self.anomaly_frequency = anomaly_frequency
        self.anomaly_multiplier = anomaly_multiplier
        self.use_anomalies = use_anomalies
        self.rng = random.Random(seed)
        self.latency = _Latency(self.rng, randomness, time_scale)

    def is_anomaly(self, record: Record) -> bool:
        return (
            self.use_anomalies
            and isinstance(record.id, int)
            and (record.id + 1) % self.anomaly_frequency == 0
        )

    async def enrich(self, record: Record) -> Dict[str, object]:
        count = self.latency.pick(*self.orders_per_company)
        multiplier = self.anomaly_multiplier if self.is_anomaly(record) else 1
        await self.latency.sleep(multiplier * self.latency.pick(*self.per_order_ms) * count)
        orders = [
            {
                "id": self.rng.randint(0, 100000),
                "product_name": self.rng.choice(_PRODUCTS),
                "price": f"{self.rng.uniform(1, 1000):.2f}",
                "purchase_date": (date.today() - timedelta(days=self.rng.randint(0, 365))).isoformat(),
            }
            for _ in range(count)
        ]
        return {"orders": orders, "order_count": len(orders)}


class DemoEmailSink:
    """Pretends to send one bulk email per delivered batch."""

    def __init__(
        self,
        delay_ms: Tuple[int, int] = (40, 80),
        randomness: bool = True,
        time_scale: float = 1.0,
        seed: Optional[int] = None,
    ):
        self.delay_ms = delay_ms
        self.latency = _Latency(random.Random(seed), randomness, time_scale)
        self.batches: List[List[object]] = []

    async def deliver(self, batch: Batch) -> int:
        await self.latency.sleep(self.latency.pick(*self.delay_ms))
        self.batches.append(batch.ids)
        logger.debug(f"Sent bulk email to {len(batch)} companies")
        return len(batch)

    @property
    def delivered_ids(self) -> List[object]:
        return [record_id for ids in self.batches for record_id in ids]
