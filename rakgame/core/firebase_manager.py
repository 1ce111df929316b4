import firebase_admin
from firebase_admin import credentials, firestore, storage
import pyrebase
import json
import os
import logging
import time
from typing import Optional, Dict, Any
from config.environment import Environment
from rakgame.core.error_handler import AuthenticationError, handle_error
from rakgame.core.models import UserIdentity, UserProfile, utc_now_iso

logger = logging.getLogger(__name__)

class FirebaseManager:
    """Manages Firebase initialization, the Firestore client and the signed-in session."""

    _connection_check_interval = 300  # 5 minutes

    def __init__(self, config: Optional[Dict[str, Any]] = None, users_collection: Optional[str] = None):
        self.config = config or Environment.get_firebase_config()
        self.users_collection = users_collection or Environment.COLLECTIONS['users']
        self._initialized = False
        self._firebase_app = None
        self._db = None
        self._firebase = None
        self._current_user: Optional[UserIdentity] = None
        self._last_connection_check = 0

    def initialize(self) -> bool:
        """Initialize Firebase connection"""
        try:
            if self._initialized:
                return True

            if not self._initialize_firebase_admin():
                return False
            self._db = firestore.client(self._firebase_app)
            if not self._initialize_firebase_client():
                return False

            self._initialized = True
            logger.info("Firebase initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Error initializing Firebase: {str(e)}")
            return False

    def _initialize_firebase_admin(self) -> bool:
        """Initialize Firebase Admin SDK with proper error handling."""
        try:
            # Check if app already exists
            try:
                self._firebase_app = firebase_admin.get_app()
                logger.info("Using existing Firebase Admin SDK app")
                return True
            except ValueError:
                cred_json = os.getenv('FIREBASE_CREDENTIALS')
                if cred_json:
                    cred = credentials.Certificate(json.loads(cred_json))
                else:
                    cred = credentials.Certificate({
                        "type": "service_account",
                        "project_id": self.config.get('projectId'),
                        "private_key_id": os.getenv("FIREBASE_PRIVATE_KEY_ID"),
                        "private_key": (os.getenv("FIREBASE_PRIVATE_KEY") or "").replace("\\n", "\n"),
                        "client_email": os.getenv("FIREBASE_CLIENT_EMAIL"),
                        "client_id": os.getenv("FIREBASE_CLIENT_ID"),
                        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                        "token_uri": "https://oauth2.googleapis.com/token",
                        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
                        "client_x509_cert_url": os.getenv("FIREBASE_CLIENT_X509_CERT_URL")
                    })
                options = {}
                if self.config.get('storageBucket'):
                    options['storageBucket'] = self.config['storageBucket']
                self._firebase_app = firebase_admin.initialize_app(cred, options)
                logger.info("Firebase Admin SDK initialized successfully")
                return True
        except Exception as e:
            logger.error(f"Error initializing Firebase Admin SDK: {str(e)}")
            return False

    def _initialize_firebase_client(self) -> bool:
        """Initialize Firebase Client SDK with proper configuration validation."""
        try:
            firebase_config = dict(self.config)
            firebase_config["databaseURL"] = f"https://{self.config.get('projectId')}.firebaseio.com"

            # Verify all required config values are present
            required_keys = ["apiKey", "authDomain", "projectId", "storageBucket"]
            missing_keys = [key for key in required_keys if not firebase_config.get(key)]
            if missing_keys:
                raise ValueError(f"Missing required Firebase config values: {', '.join(missing_keys)}")

            self._firebase = pyrebase.initialize_app(firebase_config)
            return True
        except Exception as e:
            logger.error(f"Error initializing Firebase Client SDK: {str(e)}")
            return False

    @property
    def db(self):
        """Get Firestore database instance"""
        if not self._initialized:
            raise RuntimeError("Firebase not initialized")
        return self._db

    def bucket(self):
        """Get the Cloud Storage bucket used for cover images"""
        if not self._initialized:
            raise RuntimeError("Firebase not initialized")
        return storage.bucket(app=self._firebase_app)

    def is_initialized(self) -> bool:
        return self._initialized

    def check_connection(self) -> bool:
        """Check if the Firestore connection is usable"""
        current_time = time.time()
        if current_time - self._last_connection_check < self._connection_check_interval:
            return self._initialized

        self._last_connection_check = current_time
        try:
            if not self._initialized:
                return self.initialize()
            self._db.collection(self.users_collection).limit(1).get()
            return True
        except Exception as e:
            logger.warning(f"Firebase connection check failed: {str(e)}")
            return False

    def close(self):
        """Close Firebase connection"""
        if self._firebase_app:
            firebase_admin.delete_app(self._firebase_app)
        self._initialized = False
        self._db = None
        self._firebase_app = None
        self._firebase = None
        self._current_user = None

    @staticmethod
    def _auth_error(error: Exception) -> AuthenticationError:
        """Translate a Firebase Auth REST error into an AuthenticationError"""
        code = None
        if len(getattr(error, 'args', ())) > 1:
            try:
                code = json.loads(error.args[1])['error']['message']
            except (TypeError, ValueError, KeyError):
                code = None
        if code:
            code = code.split(':', 1)[0].strip()
        return AuthenticationError(str(error), error_code=code)

    def _set_current_user(self, auth_user: dict) -> UserIdentity:
        self._current_user = UserIdentity(
            id=auth_user['localId'],
            email=auth_user.get('email', ''),
            id_token=auth_user.get('idToken')
        )
        return self._current_user

    def sign_in(self, email: str, password: str) -> UserIdentity:
        """Sign in a user with email and password"""
        if not self._initialized:
            raise RuntimeError("Firebase not initialized")
        try:
            user = self._firebase.auth().sign_in_with_email_and_password(email, password)
        except Exception as e:
            logger.error(f"Error signing in user: {str(e)}")
            raise self._auth_error(e)

        identity = self._set_current_user(user)
        user_ref = self.db.collection(self.users_collection).document(identity.id)
        if not user_ref.get().exists:
            user_ref.set(self._default_profile(identity))
        logger.info(f"Signed in {identity.email}")
        return identity

    def sign_up(self, email: str, password: str, currency: Optional[str] = None) -> UserIdentity:
        """Create a new user with email and password"""
        if not self._initialized:
            raise RuntimeError("Firebase not initialized")
        try:
            user = self._firebase.auth().create_user_with_email_and_password(email, password)
        except Exception as e:
            logger.error(f"Error creating user: {str(e)}")
            raise self._auth_error(e)

        identity = self._set_current_user(user)
        profile = self._default_profile(identity)
        if currency:
            profile['currency'] = currency
        self.db.collection(self.users_collection).document(identity.id).set(profile)
        return identity

    def send_password_reset(self, email: str) -> None:
        """Send a password reset email"""
        if not self._initialized:
            raise RuntimeError("Firebase not initialized")
        try:
            self._firebase.auth().send_password_reset_email(email)
        except Exception as e:
            logger.error(f"Error sending password reset: {str(e)}")
            raise self._auth_error(e)

    def sign_out(self) -> None:
        """Sign out the current user"""
        self._current_user = None

    def get_current_user(self) -> Optional[UserIdentity]:
        """Get the signed-in user, if any"""
        return self._current_user

    def _default_profile(self, identity: UserIdentity) -> Dict[str, Any]:
        ui_settings = Environment.get_ui_settings()
        return {
            'email': identity.email,
            'currency': ui_settings['default_currency'],
            'language': ui_settings['default_language'],
            'created_at': utc_now_iso()
        }

    def get_user_profile(self) -> UserProfile:
        """Load the signed-in user's profile (currency and language)"""
        user = self.get_current_user()
        if not user:
            raise AuthenticationError("Not authenticated", error_code='UNAUTHENTICATED')
        doc = self.db.collection(self.users_collection).document(user.id).get()
        data = doc.to_dict() if doc.exists else self._default_profile(user)
        return UserProfile.from_dict({**data, 'id': user.id, 'email': data.get('email') or user.email})

    @handle_error
    def update_user_profile(self, updates: Dict[str, Any]) -> UserProfile:
        """Update the signed-in user's profile settings"""
        user = self.get_current_user()
        if not user:
            raise AuthenticationError("Not authenticated", error_code='UNAUTHENTICATED')
        current = self.get_user_profile()
        profile = UserProfile.from_dict({**current.to_dict(), **updates})
        self.db.collection(self.users_collection).document(user.id).set(
            {'currency': profile.currency, 'language': profile.language},
            merge=True
        )
        return profile
