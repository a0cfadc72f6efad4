TRANSFER_PREFIX = "transfer:"


def transfer_key(key: str) -> str:
    return f"{TRANSFER_PREFIX}{key}"


def transfer_pattern() -> str:
    return f"{TRANSFER_PREFIX}*"
