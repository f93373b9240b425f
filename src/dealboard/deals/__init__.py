"""Deal domain -- stage registry, schemas, models, and persistence.

Provides the pipeline Stage registry, Pydantic schemas (Deal, Prospect and
their input payloads), SQLAlchemy models (DealModel, ProspectModel),
DealRepository for async CRUD, and the DealPersistence adapter the board uses.
"""
