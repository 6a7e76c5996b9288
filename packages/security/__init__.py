from .pii import mask_ip_address, redact_referrer, redact_value

__all__ = [
    "mask_ip_address",
    "redact_referrer",
    "redact_value",
]
