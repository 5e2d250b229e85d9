"""
Standings REST endpoints.

GET /v1/standings/{bucket} — Ordered table for ``opening``, ``closing`` or
``accumulated`` (both buckets summed).
"""
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends

from shared.models.enums import CompetitionBucket
from matchday.standings import accumulate, sort_standings
from storage.base import LeagueStore

from api.dependencies import get_store

router = APIRouter(prefix="/v1/standings", tags=["standings"])


@router.get("/{bucket}")
async def get_standings(
    bucket: Literal["opening", "closing", "accumulated"],
    store: LeagueStore = Depends(get_store),
) -> dict[str, Any]:
    if bucket == "accumulated":
        table = accumulate(
            await store.list_team_aggregates(CompetitionBucket.OPENING),
            await store.list_team_aggregates(CompetitionBucket.CLOSING),
        )
    else:
        table = sort_standings(await store.list_team_aggregates(CompetitionBucket(bucket)))
    return {
        "bucket": bucket,
        "teams": [t.model_dump(mode="json", exclude={"bucket"}) for t in table],
    }
