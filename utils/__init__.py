"""Utilities for the voting protocol."""

from .utils import (
    setup_logging,
    save_results,
    PerformanceMonitor,
    create_performance_report,
    get_system_info,
    format_duration
)
from .randomness import (
    RandomSource,
    SecureRandomSource,
    SeededRandomSource,
    make_random_source
)
from .bits import Bits, pack_bits, unpack_bits, int_to_bits, as_bits

__all__ = [
    'setup_logging',
    'save_results',
    'PerformanceMonitor',
    'create_performance_report',
    'get_system_info',
    'format_duration',
    'RandomSource',
    'SecureRandomSource',
    'SeededRandomSource',
    'make_random_source',
    'Bits',
    'pack_bits',
    'unpack_bits',
    'int_to_bits',
    'as_bits'
]
