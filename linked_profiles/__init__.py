"""Linked Profiles — who can a caller book salon appointments for?

Given a caller's phone number or Meevo client id, the service finds the
caller's Meevo account and every account that names the caller as its
guardian (minors and adult guests), so a voice booking agent knows whose
appointments it may schedule.

Architecture Overview
=====================

Request flow: ``POST /get`` → phone resolution (if only a phone was sent)
→ caller detail fetch → linked-profile discovery → response assembly.

Key Design Decisions
--------------------
- **Flat upstream pagination**: Meevo cannot filter clients by phone or by
  guardian, so both the phone lookup and discovery are bounded scans over
  pages fetched concurrently in small fixed-size groups.
- **Pluggable discovery**: the scan strategy (full directory, recent pages
  without phone numbers, change feed, surname fallback, or the hybrid
  default) is chosen by configuration.  Every strategy shares the same
  confirmation rule: a record is linked only if its ``guardian_id`` equals
  the caller's client id.
- **Best-effort completeness**: a failed page or detail fetch is skipped,
  never fatal.  Only authentication failures fail the request.
- **Token cache**: one process-wide bearer token, refreshed five minutes
  before expiry.

Package Structure
-----------------
- ``linked_profiles/config.py`` — configuration from environment / SSM
- ``linked_profiles/models.py`` — client records, linked profiles, phone normalization
- ``linked_profiles/server.py`` — FastAPI application
- ``linked_profiles/main.py`` — CLI for one-off lookups
- ``linked_profiles/services/`` — Meevo client, token provider, resolver,
  discovery, response assembly, metrics
- ``linked_profiles/api/`` — FastAPI routes and Pydantic schemas
"""
