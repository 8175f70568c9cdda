"""Report support modules (evidence pack, JSON rendering).

Public API:
    - ``build_evidence_pack``: explainability bundle for a health report.
    - ``to_json``: deterministic, NaN-free JSON rendering.
"""
