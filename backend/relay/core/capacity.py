from relay.core.registry import KeyRegistry

STATUS_OK = "OK"
STATUS_FULL = "FULL"


def capacity_status(registry: KeyRegistry, max_keys: int) -> str:
    # Advisory only: /upload does not consult this, so the active count can
    # grow past max_keys.
    if registry.count() > max_keys:
        return STATUS_FULL
    return STATUS_OK
