"""
Transformer App - Enrichment

Responsibilities:
- Join contacts and deals against reference data held in memory
  (pipelines, stages, users, custom field definitions)
- Map raw custom field value lists to {tag: {value, fieldId, ...}}

Pure transform: no network or storage access.
"""
