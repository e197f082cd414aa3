import hmac


def verify_flutterwave_hash(received, secret_hash) -> bool:
    """
    Flutterwave echoes the dashboard's secret hash in the verif-hash header.
    Constant-time comparison; a missing header or unset secret never matches.
    """
    if not received or not secret_hash:
        return False
    return hmac.compare_digest(received.encode("utf-8"), secret_hash.encode("utf-8"))
