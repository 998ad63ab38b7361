"""
Device model: feature table, status decoding, command dispatch.
"""

from powerbox_alpaca.device.features import (
    DecodeRule,
    Feature,
    FeatureKind,
    FeatureTable,
    PwmMode,
    StatusField,
)
from powerbox_alpaca.device.builder import build_feature_table
from powerbox_alpaca.device.powerbox import PowerBox
from powerbox_alpaca.device.poller import StatusPoller

__all__ = [
    "DecodeRule",
    "Feature",
    "FeatureKind",
    "FeatureTable",
    "PwmMode",
    "StatusField",
    "build_feature_table",
    "PowerBox",
    "StatusPoller",
]
