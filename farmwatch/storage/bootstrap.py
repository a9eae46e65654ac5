"""
Seed a store from configuration.

Farms are upserted and static bands inserted idempotently, so seeding is
safe to repeat on every service start.
"""

from typing import Tuple

import structlog

from farmwatch.config.models import AppConfig, FarmConfig
from farmwatch.interfaces.stores import DataStore
from farmwatch.models.readings import Farm
from farmwatch.models.thresholds import ThresholdBand, ThresholdMethod

logger = structlog.get_logger(__name__)


def farm_from_config(farm: FarmConfig) -> Farm:
    return Farm(
        farm_id=farm.id,
        name=farm.name,
        latitude=farm.latitude,
        longitude=farm.longitude,
    )


async def seed_from_config(store: DataStore, config: AppConfig) -> Tuple[int, int]:
    """
    Write configured farms and their static bands into a store.

    Returns:
        Tuple[int, int]: (farms seeded, static bands submitted)
    """
    farms = 0
    bands = 0
    for farm in config.farms:
        await store.upsert_farm(farm_from_config(farm))
        farms += 1
        for static in farm.static_thresholds:
            await store.insert_static_band(
                ThresholdBand(
                    farm_id=farm.id,
                    metric=static.metric,
                    low=static.low,
                    high=static.high,
                    method=ThresholdMethod.STATIC,
                    as_of=static.effective_from,
                )
            )
            bands += 1

    logger.info("store_seeded_from_config", farms=farms, static_bands=bands)
    return farms, bands
