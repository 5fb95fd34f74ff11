"""
Operational flows, one per script: drawdown, account creation/deletion,
smart-contract update/sync and balance inquiry. Flows take their
collaborators (executor, extractor, database/cache factories, config
repository) as constructor arguments; cli.py wires the real ones.
"""
