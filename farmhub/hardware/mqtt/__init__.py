from farmhub.hardware.mqtt.client_factory import create_mqtt_client
from farmhub.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper, configure_mqtt_logger

__all__ = ["MQTTClientWrapper", "configure_mqtt_logger", "create_mqtt_client"]
