"""Firebase Cloud Messaging (FCM) push notification service."""

import logging
from typing import Dict, Optional

import firebase_admin
from firebase_admin import credentials as fb_credentials
from firebase_admin import messaging
from firebase_admin.exceptions import FirebaseError

logger = logging.getLogger(__name__)

PUSH_APP_NAME = "tableorder-push"


class FirebasePushService:
    """Send push notifications via Firebase Cloud Messaging (FCM v1 API)."""

    def __init__(self):
        self._initialized = False
        self._app = None

    @property
    def enabled(self) -> bool:
        return self._initialized

    def initialize(self, credentials_path: Optional[str] = None) -> None:
        """Initialize Firebase Admin SDK."""
        try:
            try:
                self._app = firebase_admin.get_app(PUSH_APP_NAME)
            except ValueError:
                cred = fb_credentials.Certificate(credentials_path) if credentials_path else None
                self._app = firebase_admin.initialize_app(cred, name=PUSH_APP_NAME)
            self._initialized = True
            logger.info("Firebase Admin SDK initialized")
        except (ValueError, OSError, FirebaseError) as e:
            logger.warning(f"Firebase initialization failed: {e}. Push notifications disabled.")

    async def send_to_device(
        self, token: str, title: str, body: str, data: Optional[Dict[str, str]] = None
    ) -> bool:
        """Send notification to a single device."""
        if not self._initialized:
            logger.debug("Firebase not initialized, skipping push notification")
            return False
        try:
            message = messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data=data or {},
                token=token,
            )
            response = messaging.send(message, app=self._app)
            logger.info(f"Push notification sent: {response}")
            return True
        except (ValueError, FirebaseError) as e:
            logger.error(f"Push notification failed: {e}")
            return False

    async def send_to_topic(
        self, topic: str, title: str, body: str, data: Optional[Dict[str, str]] = None
    ) -> bool:
        """Send notification to a topic (e.g. 'kitchen-cn1')."""
        if not self._initialized:
            return False
        try:
            message = messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data=data or {},
                topic=topic,
            )
            response = messaging.send(message, app=self._app)
            logger.info(f"Topic notification sent to '{topic}': {response}")
            return True
        except (ValueError, FirebaseError) as e:
            logger.error(f"Topic notification failed: {e}")
            return False

    async def send_order_ready(self, token: str, order_id: str, table_number: int) -> bool:
        return await self.send_to_device(
            token,
            title="Your order is ready",
            body=f"Order for table {table_number} is ready to be served.",
            data={"type": "order_ready", "order_id": order_id, "table_number": str(table_number)},
        )

    async def send_new_order(self, branch_id: str, order_id: str, table_number: int) -> bool:
        return await self.send_to_topic(
            f"kitchen-{branch_id}",
            title="New order",
            body=f"Table {table_number} placed a new order.",
            data={"type": "new_order", "order_id": order_id, "branch_id": branch_id},
        )


firebase_push = FirebasePushService()
