"""
Service layer for batchflow.

Stateless functions over the workflow database: production batches and
their QC, the packing area stock ledger, packaging, dispatch to the
Finished Goods Store and role notifications.
"""
