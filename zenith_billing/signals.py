from blinker import Namespace

_signals = Namespace()

# Sent with sender=<user_id> whenever a reconciliation changes a user's subscription row.
subscription_changed = _signals.signal("subscription-changed")
