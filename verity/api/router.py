"""
Verity — Main API Router

Aggregates all sub-routers under a single prefix so that ``verity.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from verity.api import dates, discovery, interest, matches, messages, profiles, safety

router = APIRouter()

router.include_router(discovery.router, prefix="/discover", tags=["Discovery"])
router.include_router(interest.router, prefix="/interest", tags=["Interest"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(messages.router, prefix="/matches", tags=["Messages"])
router.include_router(dates.router, prefix="/dates", tags=["Verity-Dates"])
router.include_router(safety.router, prefix="/safety", tags=["Safety"])
router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
