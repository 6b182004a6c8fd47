"""
Test Fixtures Package
"""

from .sample_data import (
    SAMPLE_GENERATE_REQUEST,
    SAMPLE_TWO_PHASE_REQUEST,
    SAMPLE_COSTS,
    SAMPLE_RENDER_SUBMIT_RESPONSE,
    SAMPLE_RENDER_SUCCEEDED,
    SAMPLE_RENDER_FAILED,
    SAMPLE_SCRIPT_JSON,
    build_script,
)

__all__ = [
    'SAMPLE_GENERATE_REQUEST',
    'SAMPLE_TWO_PHASE_REQUEST',
    'SAMPLE_COSTS',
    'SAMPLE_RENDER_SUBMIT_RESPONSE',
    'SAMPLE_RENDER_SUCCEEDED',
    'SAMPLE_RENDER_FAILED',
    'SAMPLE_SCRIPT_JSON',
    'build_script',
]
