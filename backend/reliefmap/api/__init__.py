"""API router subpackage for the relief compositor.

Each module exposes its own APIRouter for composition in the application's
main FastAPI instance.

Submodules:
    - terrain: Server-side terrain capture (composite, filter, embed PNG).
"""
