# =============================================================================
# Database Package
# =============================================================================
# Provides the async MongoDB record store.
#
# Key exports (app/db/store.py):
#   - CollectionStore: protocol for one record collection
#   - MongoCollectionStore: pymongo implementation
#   - RecordStore: owns the client, exposes `agents` and `users`
# =============================================================================
