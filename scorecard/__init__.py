"""
kpi-scorecard-engine — Source package.

Modules:
    models       — Indicator / Dashboard / User data model and snapshot ingestion
    periods      — Weekly-to-monthly period normalisation with open-week cutoff
    formulas     — Compound and formula indicator resolution
    compliance   — Per-indicator compliance percentage and traffic-light status
    scoring      — Dashboard weighted score and monthly trend
    groups       — Group-label normalisation and official group derivation
    hierarchy    — Director ownership of shared dashboards
    aggregation  — Per-group and global consolidated dashboards
    pipeline     — One computation pass over a snapshot
    config       — config.yaml -> EngineSettings
    simulator    — Seeded demo snapshot generator
"""
