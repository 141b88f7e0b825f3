"""
STOCKCOUNT Services Package

Service modules used by the session pipeline, organized by function.

Natural Language (services.nlp)
-------------------------------
- TranscriptAggregator: Transcript fragments -> utterances
- CommandExtractor: LLM and rule-based command extraction
- CommandAccumulator: Multi-utterance command merging
- SessionContext: Per-session conversation and confirmation state

Catalog (services.catalog)
--------------------------
- Embedders, similarity search backends, ItemResolver

Confirmation (services.confirmation)
------------------------------------
- ConfirmationPolicy: Risk-based confirmation decisions
- Spoken feedback text and voice corrections

Inventory (services.inventory)
------------------------------
- InventoryStore: SQLite persistence
- ActionLog: Single-step undo
- Unit conversion
"""
