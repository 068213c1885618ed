"""
Recommendations Module Summary
==============================

Turns structured travel intents into answers built from a trip's saved places.

Key Features Implemented:
1. RankingService - relevance filter and ranking pipeline
2. AlternativesService - substitutes for an unavailable place, saved first, then discovered nearby
3. ContextService - snapshot of the current segment, city progress and nearby picks
4. REST API endpoints for ranking, alternatives and trip context
"""
