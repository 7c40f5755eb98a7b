import json
import logging
import ssl
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import paho.mqtt.client as mqtt

from circulation.config import settings
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)


class NotificationService:
    """Publishes borrow/return events to MQTT for readers' devices and mailers.

    Delivery is best effort: nothing here raises into the caller, and events
    published while the broker is unreachable are dropped with a warning.
    """
    
    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.is_connected = False
        self._lock = threading.Lock()
        # Last events published, newest last
        self.recent_events: List[Dict[str, Any]] = []
        self._recent_limit = 50
    
    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client connects to broker."""
        if reason_code.is_failure:
            logger.error(f"MQTT connection failed: {reason_code}")
            self.is_connected = False
        else:
            self.is_connected = True
            logger.info(f"MQTT client connected to {settings.mqtt_broker}:{settings.mqtt_port}")
    
    def on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback when MQTT client disconnects from broker."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"MQTT client disconnected unexpectedly ({reason_code})")
        else:
            logger.info("MQTT client disconnected")
    
    def _setup_tls(self):
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        if settings.mqtt_ca_cert:
            ca_path = Path(settings.mqtt_ca_cert)
            if not ca_path.exists():
                raise FileNotFoundError(f"CA certificate file not found: {ca_path}")
            context.load_verify_locations(cafile=str(ca_path))
        if settings.mqtt_tls_insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            logger.warning("TLS insecure mode enabled - certificate verification disabled")
        self.client.tls_set_context(context)
    
    def connect(self):
        """Connect to MQTT broker; the network loop keeps retrying in background."""
        if not settings.mqtt_enabled:
            logger.info("MQTT notifications disabled by configuration")
            return
        try:
            with self._lock:
                if self.client and self.is_connected:
                    logger.info("MQTT client already connected")
                    return
                
                client_id = f"library-circulation-{threading.current_thread().ident}"
                self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
                self.client.on_connect = self.on_connect
                self.client.on_disconnect = self.on_disconnect
                
                if settings.mqtt_use_tls:
                    self._setup_tls()
                if settings.mqtt_username and settings.mqtt_password:
                    self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)
                
                logger.info(f"Connecting to MQTT broker at {settings.mqtt_broker}:{settings.mqtt_port}")
                try:
                    self.client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
                except Exception as conn_error:
                    logger.warning(f"Initial MQTT connection failed: {conn_error}. The service will retry automatically.")
                self.client.loop_start()
        except Exception as e:
            logger.error(f"Error setting up MQTT client: {e}", exc_info=True)
            self.is_connected = False
    
    def disconnect(self):
        """Disconnect from MQTT broker."""
        try:
            with self._lock:
                if self.client:
                    self.client.loop_stop()
                    self.client.disconnect()
                    self.is_connected = False
                    logger.info("MQTT client disconnected")
        except Exception as e:
            logger.error(f"Error disconnecting from MQTT broker: {e}", exc_info=True)
    
    def is_running(self) -> bool:
        """Check if MQTT service is running and connected."""
        return self.is_connected and self.client is not None
    
    def publish(self, event: str, library_card_id: int, payload: Optional[Dict[str, Any]] = None):
        """Fire-and-forget publish of a circulation event for a library card."""
        message = {"event": event, "libraryCardId": library_card_id, "timestamp": now_local().isoformat()}
        message.update(payload or {})
        with self._lock:
            self.recent_events.append(message)
            del self.recent_events[:-self._recent_limit]
        
        topic = settings.mqtt_event_topic_format.format(library_card_id=library_card_id)
        if not self.is_running():
            logger.warning(f"MQTT not connected, dropping {event} event for card {library_card_id}")
            return
        try:
            result = self.client.publish(topic, json.dumps(message, default=str), qos=1)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                logger.info(f"Published {event} to {topic}")
            else:
                logger.error(f"Failed to publish {event} to {topic}: rc={result.rc}")
        except Exception as e:
            logger.error(f"Error publishing {event} event: {e}", exc_info=True)
    
    def borrow_event(self, event: str, borrow_request, **extra):
        payload = {
            "borrowRequestId": borrow_request.borrow_request_id,
            "status": borrow_request.status,
            "dueDate": borrow_request.due_date.isoformat() if borrow_request.due_date else None,
        }
        payload.update(extra)
        self.publish(event, borrow_request.library_card_id, payload)


notification_service = NotificationService()
