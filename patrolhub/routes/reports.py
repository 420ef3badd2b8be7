from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_store
from ..services import signals
from ..services.site_aggregator import SiteAggregator
from ..sheets.provider import TabularStore


router = APIRouter(tags=["reports"])


@router.get("/reports/inspections/daily", response_model=Dict[str, Dict[str, int]])
def daily_inspections(days: int = Query(30, ge=1, le=365), store: TabularStore = Depends(get_store)):
    """Inspection visits per site per operational date."""
    return SiteAggregator(store).daily_visits(days)


@router.get("/signals/{kind}")
def read_signal(kind: str, store: TabularStore = Depends(get_store)):
    if kind not in signals.SIGNAL_KEYS:
        raise HTTPException(status_code=404, detail="Unknown signal")
    return signals.read_signal(store, kind)
