"""
Sentinel Infrastructure Layer

Local integrations: the inference backend, the JSON document store and
in-process metrics. Nothing here transmits clinical data off the device.
"""
