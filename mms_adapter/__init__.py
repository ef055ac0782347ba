"""
Legacy Model API Adapter

This package re-exposes a model-management backend (orgs, projects,
branches, elements, artifacts) through the URL conventions and JSON wire
format of the legacy MMS3-style API spoken by desktop modelling tools and
web view editors. It is pure protocol and schema translation.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Error taxonomy, composite identifiers, backend entities
   - Outputs: Frozen entity types, AdapterError subclasses
   - MUST NOT: Perform I/O or import any other layer

2. FORMATTING (formatting/)
   - Responsibility: Legacy record <-> backend entity transcoding
   - Allowed inputs: Legacy JSON dicts, backend entities
   - MUST NOT: Call the backend or validate field values

3. CHILD VIEWS (views/)
   - Responsibility: Derive `_childViews` on read, apply reorders and
     relocations on write
   - Allowed inputs: Backend elements, one batched element lookup
   - MUST NOT: Issue more than one lookup per resolution step

4. QUERY TRANSLATION (query/)
   - Responsibility: Legacy search DSL -> backend filter predicates
   - MUST NOT: Perform I/O

5. BACKEND CONTROLLERS (storage/)
   - Responsibility: The controller contract the adapter consumes, and an
     in-memory reference implementation

6. API (api/)
   - Responsibility: Request handlers, option parsing, sessions and the
     FastAPI application
   - MUST NOT: Let an exception escape a route

CONSTRAINTS ENFORCED:
=====================
- Unknown legacy fields round-trip through the entity `extra` bucket
- Composite ids never leak to legacy clients; only local ids do
- Every handler completes with a status code and payload, even on error
"""

__version__ = "0.1.0"
