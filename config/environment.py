"""
Environment configuration for the RakGame collection tracker.
This file manages environment-specific settings and configurations.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid integer for {name}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid number for {name}, using {default}")
        return default


class Environment:
    """Environment configuration class"""

    # Application Settings
    APP_NAME = "RakGame"
    APP_VERSION = "1.0.0"
    DEBUG_MODE = os.getenv('DEBUG_MODE', 'False').lower() == 'true'

    # Firebase Settings
    FIREBASE_CONFIG = {
        'apiKey': os.getenv('FIREBASE_API_KEY'),
        'authDomain': os.getenv('FIREBASE_AUTH_DOMAIN'),
        'projectId': os.getenv('FIREBASE_PROJECT_ID'),
        'storageBucket': os.getenv('FIREBASE_STORAGE_BUCKET'),
        'messagingSenderId': os.getenv('FIREBASE_MESSAGING_SENDER_ID'),
        'appId': os.getenv('FIREBASE_APP_ID')
    }

    # Firestore collection names
    COLLECTIONS = {
        'games': os.getenv('GAMES_COLLECTION', 'games'),
        'sellers': os.getenv('SELLERS_COLLECTION', 'sellers'),
        'users': os.getenv('USERS_COLLECTION', 'users')
    }

    # Offline sync settings
    SYNC_SETTINGS = {
        'storage_path': os.getenv(
            'LOCAL_STORAGE_PATH',
            str(Path.home() / '.rakgame' / 'local_storage.json')
        ),
        'queue_key': os.getenv('SYNC_QUEUE_KEY', 'rakgame_sync_queue'),
        'max_retries': _env_int('SYNC_MAX_RETRIES', 3),
        'settle_delay': _env_float('SYNC_SETTLE_DELAY', 1.0),
        'probe_url': os.getenv('CONNECTIVITY_PROBE_URL', 'https://firestore.googleapis.com'),
        'probe_interval': _env_float('CONNECTIVITY_PROBE_INTERVAL', 5.0),
        'probe_timeout': _env_float('CONNECTIVITY_PROBE_TIMEOUT', 3.0)
    }

    # UI Settings
    UI_SETTINGS = {
        'default_currency': os.getenv('DEFAULT_CURRENCY', 'THB'),
        'default_language': os.getenv('DEFAULT_LANGUAGE', 'en'),
        'date_format': os.getenv('DATE_FORMAT', '%Y-%m-%d')
    }

    # Cover image settings
    IMAGE_SETTINGS = {
        'bucket_folder': os.getenv('IMAGE_BUCKET_FOLDER', 'game-images'),
        'max_image_size': _env_int('MAX_IMAGE_SIZE', 5 * 1024 * 1024)
    }

    # Export settings
    EXPORT_SETTINGS = {
        'max_games': _env_int('EXPORT_MAX_GAMES', 1000),
        'filename_prefix': os.getenv('EXPORT_FILENAME_PREFIX', 'rakgame-collection')
    }

    # Logging Settings
    LOGGING_CONFIG = {
        'level': os.getenv('LOG_LEVEL', 'INFO'),
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'file': os.getenv('LOG_FILE')
    }

    # Error Handling
    ERROR_HANDLING = {
        'show_detailed_errors': DEBUG_MODE
    }

    @classmethod
    def is_production(cls):
        """Check if running in production environment"""
        return not cls.DEBUG_MODE

    @classmethod
    def get_setting(cls, key: str, default: Any = None) -> Any:
        """Get a setting value"""
        try:
            # Check environment variables first
            value = os.getenv(key)
            if value is not None:
                return value

            for section in (cls.SYNC_SETTINGS, cls.UI_SETTINGS, cls.IMAGE_SETTINGS,
                            cls.EXPORT_SETTINGS, cls.FIREBASE_CONFIG):
                if key in section:
                    return section[key]

            return default
        except Exception as e:
            logger.error(f"Error getting setting {key}: {str(e)}")
            return default

    @classmethod
    def validate_config(cls) -> bool:
        """Validate the configuration"""
        try:
            # Check required Firebase settings
            required_firebase = ['apiKey', 'authDomain', 'projectId']
            for key in required_firebase:
                if not cls.FIREBASE_CONFIG.get(key):
                    logger.error(f"Missing required Firebase setting: {key}")
                    return False

            if cls.SYNC_SETTINGS['max_retries'] < 1:
                logger.error("Invalid sync retry ceiling")
                return False

            if cls.SYNC_SETTINGS['settle_delay'] < 0:
                logger.error("Invalid sync settle delay")
                return False

            return True
        except Exception as e:
            logger.error(f"Configuration validation failed: {str(e)}")
            return False

    @classmethod
    def configure_logging(cls) -> None:
        """Apply LOGGING_CONFIG to the root logger"""
        handlers = [logging.StreamHandler()]
        if cls.LOGGING_CONFIG['file']:
            handlers.append(logging.FileHandler(cls.LOGGING_CONFIG['file']))
        logging.basicConfig(
            level=getattr(logging, str(cls.LOGGING_CONFIG['level']).upper(), logging.INFO),
            format=cls.LOGGING_CONFIG['format'],
            handlers=handlers
        )

    @classmethod
    def get_firebase_config(cls):
        """Get Firebase configuration"""
        return cls.FIREBASE_CONFIG

    @classmethod
    def get_collections(cls) -> Dict[str, str]:
        """Get Firestore collection names"""
        return cls.COLLECTIONS.copy()

    @classmethod
    def get_sync_settings(cls) -> Dict[str, Any]:
        """Get offline sync settings"""
        return cls.SYNC_SETTINGS.copy()

    @classmethod
    def get_ui_settings(cls):
        """Get UI settings"""
        return cls.UI_SETTINGS.copy()

    @classmethod
    def get_image_settings(cls):
        """Get cover image settings"""
        return cls.IMAGE_SETTINGS.copy()

    @classmethod
    def get_export_settings(cls):
        """Get export settings"""
        return cls.EXPORT_SETTINGS.copy()

    @classmethod
    def get_error_handling_settings(cls):
        """Get error handling settings"""
        return cls.ERROR_HANDLING
