"""Production pipeline records (read-only inputs to the analytics core)."""

from stitchlab.features.production.models import (
    FabricCutting,
    QCInspection,
    SampleVersion,
    Shipment,
    Style,
    Tailor,
    TailorJob,
    TailorPayment,
    Vendor,
    VendorRate,
)

__all__ = [
    "FabricCutting",
    "QCInspection",
    "SampleVersion",
    "Shipment",
    "Style",
    "Tailor",
    "TailorJob",
    "TailorPayment",
    "Vendor",
    "VendorRate",
]
