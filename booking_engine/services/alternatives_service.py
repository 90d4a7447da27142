import time
from datetime import date, timedelta
from typing import Callable, List, Optional

from booking_engine.core.config import settings
from booking_engine.core.errors import DataUnavailableError
from booking_engine.core.logger import logger
from booking_engine.models.schemas import AlternativeSlot
from booking_engine.services.db_service import db_service
from booking_engine.services.slot_service import SlotGenerator
from booking_engine.services.time_utils import TimeOfDay, from_minutes, to_minutes


class AlternativeSlotFinder:
    """
    Searches the days following a rejected request for open slots with any
    provider of the same service.
    """

    def __init__(
        self,
        store=None,
        slot_generator: Optional[SlotGenerator] = None,
        search_days: Optional[int] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.store = store or db_service
        self.slot_generator = slot_generator or SlotGenerator(store=self.store)
        self.search_days = search_days or settings.ALTERNATIVE_SEARCH_DAYS
        self.timer = timer

    async def find_alternatives(
        self,
        service_id: str,
        original_date: date,
        original_time: TimeOfDay,
        service_duration: int,
        max_alternatives: int = 5,
        original_provider_id: Optional[str] = None,
        time_budget_seconds: Optional[float] = None,
    ) -> List[AlternativeSlot]:
        """
        First `max_alternatives` available slots, providers outer and dates inner.

        The rejected (date, time) is skipped only for the provider it was
        requested from; without `original_provider_id` it is skipped for all.
        """
        if max_alternatives <= 0:
            return []

        try:
            providers = await self.store.fetch_service_providers(service_id)
        except DataUnavailableError as e:
            logger.error(f"❌ Alternative search aborted for service {service_id}: {e}")
            return []

        original_slot = from_minutes(to_minutes(original_time))
        search_dates = [original_date + timedelta(days=i) for i in range(self.search_days)]
        deadline = self.timer() + time_budget_seconds if time_budget_seconds else None
        alternatives: List[AlternativeSlot] = []

        for provider in providers:
            for search_date in search_dates:
                if deadline is not None and self.timer() >= deadline:
                    logger.warning(f"⏱️ Alternative search budget exhausted with {len(alternatives)} result(s)")
                    return alternatives

                slots = await self.slot_generator.available_slots(provider.provider_id, search_date, service_duration)

                for slot in slots:
                    if not slot.available:
                        continue
                    is_rejected_slot = search_date == original_date and slot.time == original_slot
                    if is_rejected_slot and original_provider_id in (None, provider.provider_id):
                        continue

                    alternatives.append(AlternativeSlot(
                        date=search_date,
                        time=slot.time,
                        provider_id=provider.provider_id,
                        provider_name=provider.provider_name,
                    ))
                    if len(alternatives) >= max_alternatives:
                        return alternatives

        logger.info(f"🔎 Found {len(alternatives)} alternative(s) for service {service_id}")
        return alternatives
