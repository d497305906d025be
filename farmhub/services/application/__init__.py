from farmhub.services.application.demo_devices import demo_device_specs, seed_demo_devices
from farmhub.services.application.device_health_service import DeviceHealthService

__all__ = ["DeviceHealthService", "demo_device_specs", "seed_demo_devices"]
