"""
Utility modules for the lending scripts
"""
from .config_loader import ConfigRepository, LendingConfig, InstitutionConfig, validate_institution
from .identifiers import generate_request_id, generate_trace_parent

__all__ = [
    'ConfigRepository',
    'LendingConfig',
    'InstitutionConfig',
    'validate_institution',
    'generate_request_id',
    'generate_trace_parent',
]
