"""
Services Module
===============

- hardware: device registry, command dispatcher, outbound channels
- application: health monitor, demo devices
- container: wiring of all of the above
"""
