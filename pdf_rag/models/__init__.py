# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - jobs.py: IngestionJob, the queue message contract (+ strict decoder)
#   - responses.py: HTTP response shapes
# =============================================================================
