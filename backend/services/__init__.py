"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - geo: Address geocoding and travel distance estimation
    - matching: Candidate ranking and notification fan-out
    - dispatch_management: Assignment lifecycle (dispatch, claim, expiry)

Submodules are imported explicitly by callers; the dispatch layer depends on
Django models, so nothing is re-exported here.
"""
