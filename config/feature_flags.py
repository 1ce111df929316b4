"""
Feature flags for the RakGame collection tracker.

Core features are always on and cannot be toggled at runtime. Optional features
default to on and can be switched off for a deployment with a comma-separated
``DISABLED_FEATURES`` environment variable, or at runtime through
``enable_feature``/``disable_feature``.
"""

import os
import logging
from typing import List

logger = logging.getLogger(__name__)


def _disabled_from_env() -> List[str]:
    raw = os.getenv('DISABLED_FEATURES', '')
    return [name.strip() for name in raw.split(',') if name.strip()]


class FeatureFlags:
    """Feature switches checked by the stores, the export service and the dashboard"""

    # Required for the app to work at all
    CORE_FEATURES = {
        'collection_management': True,
        'seller_management': True,
        'user_authentication': True,
        'offline_sync': True,
        'realtime_updates': True
    }

    # Optional features
    EXPERIMENTAL_FEATURES = {
        'duplicate_detection': True,
        'image_upload': True,
        'pdf_export': True
    }

    # An optional feature is off while anything it relies on is off
    FEATURE_DEPENDENCIES = {
        'duplicate_detection': ['collection_management'],
        'image_upload': ['collection_management'],
        'pdf_export': ['collection_management']
    }

    @classmethod
    def is_feature_enabled(cls, feature_name: str) -> bool:
        """Check if a feature is enabled"""
        if feature_name in cls.CORE_FEATURES:
            return cls.CORE_FEATURES[feature_name]

        if feature_name not in cls.EXPERIMENTAL_FEATURES:
            logger.warning(f"Unknown feature: {feature_name}")
            return False

        missing = [dep for dep in cls.FEATURE_DEPENDENCIES.get(feature_name, [])
                   if not cls.is_feature_enabled(dep)]
        if missing:
            logger.warning(f"Feature {feature_name} disabled, requires: {', '.join(missing)}")
            return False
        return cls.EXPERIMENTAL_FEATURES[feature_name]

    @classmethod
    def get_enabled_features(cls) -> List[str]:
        """Names of every feature currently on"""
        names = list(cls.CORE_FEATURES) + list(cls.EXPERIMENTAL_FEATURES)
        return [name for name in names if cls.is_feature_enabled(name)]

    @classmethod
    def set_feature_state(cls, feature_name: str, enabled: bool) -> bool:
        """Toggle an optional feature; returns False for core or unknown names"""
        if feature_name in cls.CORE_FEATURES:
            logger.warning(f"Cannot modify core feature: {feature_name}")
            return False

        if feature_name not in cls.EXPERIMENTAL_FEATURES:
            logger.warning(f"Unknown feature: {feature_name}")
            return False

        cls.EXPERIMENTAL_FEATURES[feature_name] = enabled
        logger.info(f"Feature {feature_name} set to {enabled}")
        return True


for _name in _disabled_from_env():
    FeatureFlags.set_feature_state(_name, False)


def is_feature_enabled(feature_name: str) -> bool:
    return FeatureFlags.is_feature_enabled(feature_name)


def enable_feature(feature_name: str) -> bool:
    return FeatureFlags.set_feature_state(feature_name, True)


def disable_feature(feature_name: str) -> bool:
    return FeatureFlags.set_feature_state(feature_name, False)
