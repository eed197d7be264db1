"""
Qt configuration: probes, feature tables and generated configuration headers.
"""

from .features import ForwardingHeaders, QtConfiguration, default_configuration
from .generator import ConfigHeaderGenerator, ConfigurationHeaderSet
from .probes import ProbeInputs, ProbeResults, run_probes

__all__ = [
    "ForwardingHeaders",
    "QtConfiguration",
    "default_configuration",
    "ConfigHeaderGenerator",
    "ConfigurationHeaderSet",
    "ProbeInputs",
    "ProbeResults",
    "run_probes",
]
