# src/seller_radar/domain/errors.py
from __future__ import annotations


class SellerRadarError(Exception):
    """Base class for errors raised by the propensity engine."""


class FeatureMismatchError(SellerRadarError, ValueError):
    """A feature vector does not match the feature contract it is used against."""


class ModelSchemaError(SellerRadarError, ValueError):
    """A persisted model payload cannot be migrated to the current schema."""
