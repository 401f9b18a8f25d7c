"""Core (UI-agnostic) studio analytics logic.

This package contains:
- date normalization and period keys
- typed feed records (XLSX/CSV -> pandas -> dataclasses)
- the period x dimension aggregation engine
- filter normalization
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
