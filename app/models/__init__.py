# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Defines request/response schemas for the API.
# These are SEPARATE from the stored documents (plain dicts in MongoDB):
# request models drop unknown fields, response models drop credentials.
# =============================================================================
