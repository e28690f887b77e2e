# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for one feature:
#   - health.py: GET / liveness check
#   - upload.py: PDF upload and ingestion status endpoints
#   - chat.py: Retrieval-augmented question answering
#   - admin.py: Dead-letter inspection
#   - deps.py: Dependency providers for the service handles on app.state
# =============================================================================
